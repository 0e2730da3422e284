"""Path resolution shared by the gateway and the client facade.

Files reach callers through several path spaces over time: upstream hrefs
(``/dav/...``), relative hrefs a browser-era client resolved against the wrong
base (``../dav/...``), dev-proxy paths (``/webdav/...``) and gateway paths
(``/api/webdav/...``). Everything here maps them onto one canonical
absolute path, and builds request URLs from it.

All functions are pure and total: they never raise for string input.
"""

from typing import Iterable
from urllib.parse import quote, unquote, urlsplit

# Most specific first.
LEGACY_PREFIXES: tuple[str, ...] = (
    "../../dav/",
    "../dav/",
    "/dav/",
    "/api/webdav/",
    "/webdav/",
)


def _prefix_table(extra_prefixes: Iterable[str]) -> tuple[tuple[str, ...], set[str]]:
    # A leading "/" is forced before matching, so "../dav/" becomes "/../dav/".
    prefixes: list[str] = []
    for prefix in (*LEGACY_PREFIXES, *extra_prefixes):
        candidate = "/" + prefix.strip("/") + "/"
        if candidate != "//" and candidate not in prefixes:
            prefixes.append(candidate)
    prefixes.sort(key=len, reverse=True)
    bare = {prefix.rstrip("/") for prefix in prefixes}
    return tuple(prefixes), bare


def normalize_path(raw: str | None, extra_prefixes: Iterable[str] = ()) -> str:
    """Normalize any historically seen path format to one canonical absolute path.

    Recognized prefixes are stripped repeatedly until none applies, so the
    result is a fixed point: ``normalize_path(normalize_path(x)) == normalize_path(x)``.

    Args:
        raw: Path in any of the known formats; ``None`` or empty means root
        extra_prefixes: Additional public prefixes to strip (e.g. a
            non-default gateway prefix)

    Returns:
        Path starting with exactly one ``/``
    """
    prefixes, bare = _prefix_table(extra_prefixes)
    path = (raw or "").strip()

    while True:
        path = "/" + path.lstrip("/")
        if path in bare:
            return "/"
        for prefix in prefixes:
            if path.startswith(prefix):
                path = path[len(prefix):]
                break
        else:
            return path


def encode_path(path: str) -> str:
    """Percent-encode every segment of ``path`` independently.

    Separators are kept as-is, so ``/a b/c#d.md`` becomes ``/a%20b/c%23d.md``.
    """
    return "/".join(quote(segment, safe="") for segment in path.split("/"))


def join_url(base_url: str, path: str) -> str:
    """Append an already-normalized path to a base URL, encoding its segments."""
    return base_url.rstrip("/") + encode_path(path)


def href_to_path(href: str) -> str:
    """Reduce an href (absolute URL or path, possibly percent-encoded) to a decoded path."""
    parts = urlsplit(href)
    path = parts.path if (parts.scheme or parts.netloc) else href.split("?", 1)[0]
    return unquote(path)


def canonical_filename(
    href_or_path: str, public_prefix: str, extra_prefixes: Iterable[str] = ()
) -> str:
    """Rewrite a listing filename into the public canonical path space.

    Whatever origin or prefix the protocol client resolved the entry against,
    the result is ``public_prefix`` followed by the WebDAV-relative path, and
    feeding it back through :func:`normalize_path` yields that relative path.
    """
    relative = normalize_path(
        href_to_path(href_or_path), [public_prefix, *extra_prefixes]
    )
    if len(relative) > 1:
        relative = relative.rstrip("/") or "/"
    prefix = "/" + public_prefix.strip("/") if public_prefix.strip("/") else ""
    if relative == "/":
        return prefix or "/"
    return prefix + relative


def basename(path: str) -> str:
    """Last non-empty segment of ``path`` (``""`` for the root)."""
    stripped = path.rstrip("/")
    return stripped.rsplit("/", 1)[-1] if stripped else ""


def parent_path(path: str) -> str:
    """Parent directory of a normalized path; the root is its own parent."""
    stripped = path.rstrip("/")
    if "/" not in stripped.lstrip("/"):
        return "/"
    return stripped.rsplit("/", 1)[0] or "/"
