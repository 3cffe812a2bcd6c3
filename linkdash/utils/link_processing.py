"""
Link utilities: destination URL cleanup / validation and short code generation.

Affiliate destinations keep their query string (tracking tags such as
``?tag=`` are what earns the commission); only whitespace and the fragment
are dropped.
"""
import secrets
import string
import urllib.parse

from linkdash.utils import get_logger

logger = get_logger(__name__)

SHORT_CODE_ALPHABET = string.ascii_letters + string.digits
ALLOWED_SCHEMES = ("http", "https")


def clean_destination_url(url: str) -> str:
    """
    Strip whitespace and the fragment from a destination URL.

    Example:
        clean_destination_url("  https://amazon.com/dp/B0C?tag=me-20#reviews ")
        -> "https://amazon.com/dp/B0C?tag=me-20"

    Raises:
        ValueError: if the URL is empty
    """
    if not url or not url.strip():
        raise ValueError("URL cannot be empty")

    parsed = urllib.parse.urlparse(url.strip())
    return urllib.parse.urlunparse(parsed._replace(fragment=""))


def validate_url_format(url: str) -> bool:
    """True when the URL has an http(s) scheme and a host."""
    try:
        result = urllib.parse.urlparse(url)
    except ValueError:
        return False
    return result.scheme.lower() in ALLOWED_SCHEMES and bool(result.netloc)


def generate_short_code(length: int) -> str:
    """Random fixed-length alphanumeric code for a smart URL."""
    if length <= 0:
        raise ValueError("Short code length must be positive")
    return "".join(secrets.choice(SHORT_CODE_ALPHABET) for _ in range(length))


__all__ = ["clean_destination_url", "validate_url_format", "generate_short_code", "SHORT_CODE_ALPHABET"]
