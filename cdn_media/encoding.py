"""URL escaping and base64 helpers shared by the URL and layer builders."""

import base64
import re
from urllib.parse import unquote

UNSAFE_URL_CHARS = r"[^a-zA-Z0-9_.\-/:]+"


def smart_escape(source: str, unsafe: str = UNSAFE_URL_CHARS) -> str:
    """Percent-escape unsafe characters, leaving / and : intact.

    Each unsafe character is encoded as its UTF-8 bytes in uppercase %XX
    form.

    Args:
        source: String to escape
        unsafe: Regex matching runs of characters to escape

    Returns:
        Escaped string
    """
    def pack(match: re.Match) -> str:
        return "".join(f"%{byte:02X}" for byte in match.group(0).encode("utf-8"))

    return re.sub(unsafe, pack, source)


def base64_encode_url(url: str) -> str:
    """Base64-encode a URL after normalizing its escaping.

    The URL is unquoted and re-escaped first so already-escaped and raw
    inputs produce the same encoding.

    Args:
        url: Remote URL

    Returns:
        Standard base64 string
    """
    url = smart_escape(unquote(url))
    return base64.b64encode(url.encode("utf-8")).decode("ascii")


def base64url_encode(data: str | bytes) -> str:
    """URL-safe base64 encoding."""
    if isinstance(data, str):
        data = data.encode("utf-8")
    return base64.urlsafe_b64encode(data).decode("ascii")
