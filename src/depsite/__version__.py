"""Version information for depsite."""

__version__ = "1.0.0"
