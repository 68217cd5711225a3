"""
Input sanitization for user-provided names, URLs and log values.
"""
import re
from urllib.parse import urlparse


def sanitize_filename(filename: str, max_length: int = 255) -> str:
    """
    Strip path components and control characters from an uploaded filename.

    Returns:
        Filename safe for logging and for echoing back to the client
    """
    if not filename:
        return "unknown"

    filename = filename.split('/')[-1].split('\\')[-1]
    filename = re.sub(r'[\x00-\x1f\x7f-\x9f]', '', filename)
    filename = filename.strip('. ')

    if len(filename) > max_length:
        filename = filename[:max_length]

    return filename or "unknown"


def sanitize_for_logging(value: str, max_length: int = 500) -> str:
    """Collapse newlines and drop control characters so a value can't forge log lines."""
    if not value:
        return ""

    value = re.sub(r'[\r\n]', ' ', value)
    value = re.sub(r'[\x00-\x1f\x7f-\x9f]', '', value)

    if len(value) > max_length:
        value = value[:max_length] + "..."

    return value


def is_http_url(url: str) -> bool:
    """Only plain http(s) URLs with a host may be fetched."""
    if not url:
        return False
    parsed = urlparse(url.strip())
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def normalize_column_name(col):
    """Collapse newlines and repeated whitespace in a header cell."""
    if isinstance(col, str):
        col = col.replace('\n', ' ').replace('\r', ' ')
        col = ' '.join(col.split())
    return col
