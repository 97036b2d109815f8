"""
Charset detection for raw HTML bytes.

Used by HtmlMapper when it is handed bytes or a file path instead of text.
"""

import re

from .logger import get_module_logger

logger = get_module_logger("charset")

# WHATWG encoding spec: browsers silently remap these charsets.
# https://encoding.spec.whatwg.org/#names-and-labels
WHATWG_CHARSET_MAP = {
    'iso-8859-1': 'windows-1252',
    'iso8859-1': 'windows-1252',
    'iso88591': 'windows-1252',
    'latin-1': 'windows-1252',
    'latin1': 'windows-1252',
    'us-ascii': 'windows-1252',
    'ascii': 'windows-1252',
    'iso-8859-9': 'windows-1254',
    'iso-8859-11': 'windows-874',
}

META_CHARSET_PATTERN = re.compile(r'<meta[^>]+charset=["\']?\s*([^\s"\';>]+)', re.IGNORECASE)
META_CONTENT_TYPE_PATTERN = re.compile(
    r'<meta[^>]+content=["\'][^"\']*charset=([^\s"\';>]+)', re.IGNORECASE
)

# Charset declarations must appear within the first 1024 bytes; scan 2048.
SNIFF_LENGTH = 2048


def detect_charset(raw_bytes: bytes) -> str:
    """
    Detect the charset declared in a <meta> tag near the top of the document.

    Returns the browser-equivalent charset, or 'utf-8' when nothing usable
    is declared.
    """
    head_str = raw_bytes[:SNIFF_LENGTH].decode('ascii', errors='ignore')

    charset = None
    m = META_CHARSET_PATTERN.search(head_str)
    if m:
        charset = m.group(1).strip().lower()

    # Legacy form: <meta http-equiv="Content-Type" content="...; charset=...">
    if not charset:
        m = META_CONTENT_TYPE_PATTERN.search(head_str)
        if m:
            charset = m.group(1).strip().lower()

    if not charset:
        return 'utf-8'

    charset = WHATWG_CHARSET_MAP.get(charset, charset)
    try:
        "".encode(charset)
    except LookupError:
        logger.warning(f"Unknown declared charset '{charset}', using utf-8")
        return 'utf-8'
    return charset


def decode_html_bytes(raw_bytes: bytes) -> str:
    """Decode HTML bytes with their declared charset, replacing bad sequences."""
    charset = detect_charset(raw_bytes)
    logger.debug(f"Decoding {len(raw_bytes)} bytes as {charset}")
    return raw_bytes.decode(charset, errors='replace')
