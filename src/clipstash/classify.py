"""Content classification for clipboard payloads.

Maps a pasteboard format plus its raw bytes to a semantic content type and
the coarse tag persisted for type-facet filtering. Everything here is pure:
the same input always produces the same output, which is what lets the tag
migration recompute tags for old rows without drifting from capture.
"""

import re
import string
from urllib.parse import urlsplit, urlunsplit

from striprtf.striprtf import rtf_to_text

from clipstash.models import ContentType, PasteboardFormat, Tag

HEX_COLOR_RE = re.compile(r"^#([A-Fa-f0-9]{3}|[A-Fa-f0-9]{4}|[A-Fa-f0-9]{6}|[A-Fa-f0-9]{8})$")

URL_SCHEMES = frozenset({"http", "https", "ftp", "ftps"})

# RFC 3986 unreserved + reserved characters, plus the percent sign
_URL_CHARS = frozenset(string.ascii_letters + string.digits + "-._~:/?#[]@!$&'()*+,;=%")

_RTF_MARKER = b"{\\rtf"


def is_css_hex_color(text: str) -> bool:
    return HEX_COLOR_RE.match(text) is not None


def as_complete_url(text: str) -> str | None:
    """Return the trimmed URL if ``text`` is exactly one absolute URL.

    The scheme must be http, https, ftp or ftps, the host must be non-empty
    and either contain a dot or be ``localhost``, and the string has to
    survive a parse/unparse round trip unchanged.
    """
    candidate = text.strip()
    if not candidate or any(ch not in _URL_CHARS for ch in candidate):
        return None
    try:
        parts = urlsplit(candidate)
        host = parts.hostname
    except ValueError:
        return None
    if parts.scheme.lower() not in URL_SCHEMES:
        return None
    if not host or ("." not in host and host != "localhost"):
        return None
    if urlunsplit(parts) != candidate:
        return None
    return candidate


def is_link(text: str) -> bool:
    return as_complete_url(text) is not None


def _decode_utf8(data: bytes) -> str:
    return data.decode("utf-8", errors="replace")


def _rtf_source(fmt: PasteboardFormat, data: bytes) -> str:
    if fmt == PasteboardFormat.RTFD:
        # Flat RTFD is a serialized file wrapper; the text lives in its TXT.rtf member
        start = data.find(_RTF_MARKER)
        if start < 0:
            return ""
        data = data[start:]
    return data.decode("latin-1")


def plain_text(fmt: PasteboardFormat, data: bytes) -> str:
    """Plain-text projection used for search and length accounting."""
    if fmt == PasteboardFormat.STRING:
        return _decode_utf8(data)
    if fmt.is_rich():
        source = _rtf_source(fmt, data)
        if not source:
            return ""
        return rtf_to_text(source, errors="ignore")
    if fmt.is_file():
        return _decode_utf8(data)
    return ""


def _text_tag(data: bytes) -> str:
    try:
        text = data.decode("utf-8")
    except UnicodeDecodeError:
        return Tag.STRING
    if is_css_hex_color(text):
        return Tag.COLOR
    if is_link(text):
        return Tag.LINK
    return Tag.STRING


def calculate_tag(fmt: PasteboardFormat | None, data: bytes) -> str:
    if fmt is None:
        return Tag.NONE
    if fmt.is_rich():
        return Tag.RICH
    if fmt == PasteboardFormat.STRING:
        return _text_tag(data)
    if fmt.is_image():
        return Tag.IMAGE
    if fmt.is_file():
        return Tag.FILE
    return Tag.NONE


_TAG_TYPES = {
    Tag.STRING: ContentType.TEXT,
    Tag.RICH: ContentType.RICH_TEXT,
    Tag.IMAGE: ContentType.IMAGE,
    Tag.FILE: ContentType.FILE_LIST,
    Tag.LINK: ContentType.LINK,
    Tag.COLOR: ContentType.COLOR,
}


def content_type_for_tag(tag: str) -> ContentType:
    return _TAG_TYPES.get(tag, ContentType.UNKNOWN)


def classify(fmt: PasteboardFormat | str | None, data: bytes) -> tuple[ContentType, str]:
    if isinstance(fmt, str) and not isinstance(fmt, PasteboardFormat):
        fmt = PasteboardFormat.parse(fmt)
    tag = calculate_tag(fmt, data)
    return content_type_for_tag(tag), tag
