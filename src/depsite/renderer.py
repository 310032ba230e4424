"""
nginx site definition renderer for depsite.

Definitions are assembled from a small directive/block tree instead of a
string template, so values are always emitted as single quoted-or-plain
arguments and can't break out of their directive.
"""

import re
from typing import List, Optional, Union

from . import paths
from .models import ProcessedConfig, ValidationResult
from .settings import Settings


MANAGED_TEXT = "Managed by depsite"
MANAGED_MARKER = f"# {MANAGED_TEXT}"

SECURITY_HEADERS = [
    ("X-Frame-Options", "SAMEORIGIN"),
    ("X-XSS-Protection", "1; mode=block"),
    ("X-Content-Type-Options", "nosniff"),
    ("Referrer-Policy", "no-referrer-when-downgrade"),
    ("Content-Security-Policy", "default-src 'self' http: https: data: blob: 'unsafe-inline'"),
]

DENIED_EXTENSIONS = ["env", "log", "ini", "conf"]

_PLAIN_ARG = re.compile(r"^[^\s;{}\"'\\#]+$")


class Raw(str):
    """Argument emitted verbatim (regexes, pre-quoted nginx strings)."""
    pass


Arg = Union[str, int, Raw]


def format_arg(value: Arg) -> str:
    """Render one directive argument, quoting when needed."""
    if isinstance(value, Raw):
        return str(value)
    text = str(value)
    if text and _PLAIN_ARG.match(text):
        return text
    escaped = text.replace("\\", "\\\\").replace('"', '\\"')
    return f'"{escaped}"'


class Directive:
    """A single `name args;` statement."""

    def __init__(self, name: str, *args: Arg):
        self.name = name
        self.args = args

    def render(self, depth: int) -> List[str]:
        parts = [self.name] + [format_arg(a) for a in self.args]
        return ["    " * depth + " ".join(parts) + ";"]


class Comment:
    """A single-line `# text` comment."""

    def __init__(self, text: str):
        self.text = " ".join(str(text).split())

    def render(self, depth: int) -> List[str]:
        return ["    " * depth + f"# {self.text}"]


class Blank:
    """An empty line."""

    def render(self, depth: int) -> List[str]:
        return [""]


class Block:
    """A `name args { ... }` block holding directives and nested blocks."""

    def __init__(self, name: str, *args: Arg):
        self.name = name
        self.args = args
        self.children: List[Union[Directive, Comment, Blank, "Block"]] = []

    def directive(self, name: str, *args: Arg) -> "Block":
        self.children.append(Directive(name, *args))
        return self

    def comment(self, text: str) -> "Block":
        self.children.append(Comment(text))
        return self

    def blank(self) -> "Block":
        self.children.append(Blank())
        return self

    def block(self, name: str, *args: Arg) -> "Block":
        child = Block(name, *args)
        self.children.append(child)
        return child

    def render(self, depth: int = 0) -> List[str]:
        indent = "    " * depth
        head = " ".join([self.name] + [format_arg(a) for a in self.args])
        lines = [f"{indent}{head} {{"]
        for child in self.children:
            lines.extend(child.render(depth + 1))
        lines.append(f"{indent}}}")
        return lines


class Document:
    """Top-level sequence of comments and blocks."""

    def __init__(self):
        self.items: List[Union[Comment, Blank, Block]] = []

    def comment(self, text: str) -> "Document":
        self.items.append(Comment(text))
        return self

    def blank(self) -> "Document":
        self.items.append(Blank())
        return self

    def add(self, block: Block) -> Block:
        self.items.append(block)
        return block

    def render(self) -> str:
        lines: List[str] = []
        for item in self.items:
            lines.extend(item.render(0))
        return "\n".join(lines) + "\n"


# =============================================================================
# Site Blocks
# =============================================================================

def _upstream_block(config: ProcessedConfig) -> Block:
    upstream = Block("upstream", config.upstream_identifier)
    upstream.directive("ip_hash")
    upstream.directive("server", f"127.0.0.1:{config.port_number}")
    return upstream


def _proxy_location(config: ProcessedConfig, settings: Settings, forwarded_proto: str) -> Block:
    location = Block("location", "/")
    location.directive("proxy_pass", f"http://{config.upstream_identifier}")
    location.directive("proxy_http_version", "1.1")
    location.directive("proxy_set_header", "Upgrade", "$http_upgrade")
    location.directive("proxy_set_header", "Connection", "upgrade")
    location.directive("proxy_set_header", "Host", "$host")
    location.directive("proxy_set_header", "X-Real-IP", "$remote_addr")
    location.directive("proxy_set_header", "X-Forwarded-For", "$proxy_add_x_forwarded_for")
    location.directive("proxy_set_header", "X-Forwarded-Proto", forwarded_proto)
    location.directive("proxy_cache_bypass", "$http_upgrade")
    location.directive("proxy_read_timeout", settings.proxy_read_timeout)
    location.directive("proxy_connect_timeout", settings.proxy_connect_timeout)
    return location


def _http_server_block(config: ProcessedConfig, settings: Settings) -> Block:
    server = Block("server")
    server.directive("listen", 80)
    server.directive("server_name", config.domain_name)
    server.blank()
    server.directive("client_max_body_size", settings.client_max_body_size)
    server.directive("charset", "utf-8")
    server.blank()

    server.comment("Security headers")
    for header, value in SECURITY_HEADERS:
        server.directive("add_header", header, value, "always")
    server.blank()

    server.children.append(_proxy_location(config, settings, "$scheme"))
    server.blank()

    server.comment("Health check endpoint")
    health = server.block("location", "=", "/health")
    health.directive("access_log", "off")
    health.directive("add_header", "Content-Type", "text/plain")
    health.directive("return", 200, Raw('"healthy\\n"'))
    server.blank()

    server.comment("Block access to hidden and sensitive files")
    server.block("location", "~", Raw(r"/\.")).directive("deny", "all")
    extensions = "|".join(DENIED_EXTENSIONS)
    server.block("location", "~*", Raw(rf"\.({extensions})$")).directive("deny", "all")

    return server


def _https_server_block(config: ProcessedConfig, settings: Settings) -> Block:
    cert_dir = paths.get_certificate_dir(config.domain_name)

    server = Block("server")
    server.directive("listen", 443, "ssl")
    server.directive("server_name", config.domain_name)
    server.blank()
    server.directive("ssl_certificate", str(cert_dir / "fullchain.pem"))
    server.directive("ssl_certificate_key", str(cert_dir / "privkey.pem"))
    server.directive("include", "/etc/letsencrypt/options-ssl-nginx.conf")
    server.directive("ssl_dhparam", "/etc/letsencrypt/ssl-dhparams.pem")
    server.blank()
    server.directive("client_max_body_size", settings.client_max_body_size)
    server.directive("add_header", "Strict-Transport-Security", "max-age=31536000; includeSubDomains", "always")
    server.blank()
    server.children.append(_proxy_location(config, settings, "https"))
    return server


def _document(config: ProcessedConfig, settings: Settings) -> Document:
    doc = Document()
    doc.comment(f"{MANAGED_TEXT}: {config.clean_identifier}")
    doc.blank()
    doc.comment(f"Upstream for {config.clean_identifier}")
    doc.add(_upstream_block(config))
    doc.blank()
    doc.comment("HTTP server block")
    doc.add(_http_server_block(config, settings))
    return doc


def render(config: ProcessedConfig, settings: Optional[Settings] = None) -> str:
    """Render the plaintext site definition."""
    return _document(config, settings or Settings()).render()


def render_ssl(config: ProcessedConfig, settings: Optional[Settings] = None) -> str:
    """Render the site definition with an HTTPS server block appended."""
    settings = settings or Settings()
    doc = _document(config, settings)
    doc.blank()
    doc.comment("HTTPS server block")
    doc.add(_https_server_block(config, settings))
    return doc.render()


def validate_syntax(text: str) -> ValidationResult:
    """
    Structural sanity check of a rendered definition.

    Only looks for required blocks and balanced braces; `nginx -t` does
    the real grammar check.
    """
    result = ValidationResult()

    if not re.search(r"^\s*upstream\s+\S+\s*\{", text, re.MULTILINE):
        result.add("Missing upstream configuration")
    if not re.search(r"^\s*server\s*\{", text, re.MULTILINE):
        result.add("Missing server block")
    if "proxy_pass" not in text:
        result.add("Missing proxy_pass directive")

    depth = 0
    for char in text:
        if char == "{":
            depth += 1
        elif char == "}":
            depth -= 1
            if depth < 0:
                break
    if depth != 0:
        result.add("Unbalanced braces in configuration")

    return result


def is_managed(text: str) -> bool:
    """Check if a definition was written by depsite."""
    return text.startswith(MANAGED_MARKER)
