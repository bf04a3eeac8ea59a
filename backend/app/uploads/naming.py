"""Filename handling for stored uploads.

Client filenames are never used as-is. They are reduced to their final path
component, stripped of anything outside a small safe character set and then
embedded in a generated name:

    {sanitized-base}-{unix-millis}-{random-token}{.ext}

e.g. ``Laporan Bulanan (Mei).pdf`` -> ``laporan-bulanan-(mei)-1716200000000-k3x9qa.pdf``
"""
import re
import secrets
import string
import time
from typing import Optional, Tuple

MAX_SANITIZED_LENGTH = 100
MAX_BASE_LENGTH = 40
TOKEN_LENGTH = 6
TOKEN_ALPHABET = string.ascii_lowercase + string.digits
FALLBACK_BASE = "file"

_UNSAFE_CHARS = re.compile(r"[^\w\s.\-()\[\]]")
_DOT_RUNS = re.compile(r"\.{2,}")
_LEADING_SEPARATORS = re.compile(r"^[./\\]+")
_WHITESPACE = re.compile(r"\s+")


def final_component(name: str) -> str:
    """Last path component of a client filename (``/`` and ``\\`` both separate)."""
    return name.replace("\\", "/").rsplit("/", 1)[-1]


def split_name(name: str) -> Tuple[str, str]:
    """Split a client filename into ``(base, extension)``.

    The extension is lower-cased and includes the leading dot; it is empty
    when the name has none. Names that start with a dot and contain no other
    dot (``.pdf``, ``.htaccess``) have no extension.
    """
    component = final_component(name)
    dot = component.rfind(".")
    if dot <= 0:
        return component, ""
    return component[:dot], component[dot:].lower()


def inner_extension(name: str) -> str:
    """Extension hidden under the outer one (``report.php.pdf`` -> ``.php``)."""
    base, _ = split_name(name)
    _, inner = split_name(base)
    return inner


def sanitize_filename(name: str) -> str:
    """Make *name* safe to use as part of a filename on disk."""
    cleaned = _UNSAFE_CHARS.sub("-", name)
    cleaned = _DOT_RUNS.sub(".", cleaned)
    cleaned = _LEADING_SEPARATORS.sub("", cleaned)
    return cleaned.strip()[:MAX_SANITIZED_LENGTH]


def random_token(length: int = TOKEN_LENGTH) -> str:
    return "".join(secrets.choice(TOKEN_ALPHABET) for _ in range(length))


def generate_stored_name(original_name: str, timestamp_ms: Optional[int] = None) -> str:
    """Generate a unique on-disk name for an upload.

    Args:
        original_name: Filename as sent by the client
        timestamp_ms: Override for the embedded timestamp (defaults to now)

    Returns:
        Name of the form ``{base}-{timestamp_ms}-{token}{ext}``
    """
    base, ext = split_name(original_name)
    ext = _UNSAFE_CHARS.sub("", _WHITESPACE.sub("", ext))
    base =_WHITESPACE.sub("-", sanitize_filename(base)).lower()[:MAX_BASE_LENGTH]
    if not base:
        base = FALLBACK_BASE
    if timestamp_ms is None:
        timestamp_ms = int(time.time() * 1000)
    return f"{base}-{timestamp_ms}-{random_token()}{ext}"
