"""
Photo reference helpers.

A photo is addressed everywhere by its filename; URIs are device- and
session-local. These helpers classify references, pull the filename out of
a URI, and generate new unique filenames.
"""

import logging
import random
import re
import string
import time
from pathlib import Path, PurePosixPath
from typing import Optional, Union
from urllib.parse import unquote, urlparse
from urllib.request import url2pathname


logger = logging.getLogger(__name__)

REMOTE_URI = re.compile(r"^(https?|data|blob):", re.IGNORECASE)
LOCAL_SCHEME = re.compile(r"^(file|content|ph|assets-library):", re.IGNORECASE)
_EXTENSION = re.compile(r"^[A-Za-z0-9]{1,5}$")
_SUFFIX_ALPHABET = string.digits + string.ascii_lowercase

PhotoSource = Union[str, Path, bytes]


def is_remote_uri(ref: str) -> bool:
    """http(s), data and blob references are not a local-storage concern."""
    return bool(REMOTE_URI.match(ref))


def is_bare_filename(ref: str) -> bool:
    """No scheme and no path separator."""
    return "://" not in ref and "/" not in ref and "\\" not in ref


def is_local_handle(ref: str) -> bool:
    """Local file scheme, media content handle, or absolute path."""
    return bool(LOCAL_SCHEME.match(ref)) or ref.startswith("/")


def filename_from_uri(uri: Optional[str]) -> Optional[str]:
    """
    Extract the filename component of a URI.

    Query string and fragment are dropped and the result is URL-decoded.

    Example:
        >>> filename_from_uri("file:///data/garden_images/plant_1%20a.jpg?x=1")
        'plant_1 a.jpg'
    """
    if not uri:
        return None
    clean = uri.split("?")[0].split("#")[0]
    name = clean.split("/")[-1]
    if not name:
        return None
    return unquote(name)


def sanitize_archive_filename(name: str) -> Optional[str]:
    """
    Make an archive entry name safe to extract.

    Backslashes become separators and only the final component is kept, so
    the name cannot escape the extraction directory. The result is
    URL-decoded and null bytes are removed.

    Returns:
        The safe filename, or None if nothing usable remains
    """
    if not name:
        return None
    base = PurePosixPath(name.replace("\\", "/")).name
    try:
        base = unquote(base, errors="strict")
    except UnicodeDecodeError:
        logger.debug(f"Could not URL-decode archive entry name {name!r}, keeping it as-is")
    base = base.replace("\x00", "")
    # Decoding may have produced new separators
    base = PurePosixPath(base.replace("\\", "/")).name
    if base in ("", ".", ".."):
        return None
    return base


def extension_for(source: PhotoSource, default: str = "jpg") -> str:
    """File extension to keep from a source reference."""
    if isinstance(source, bytes):
        return default
    name = filename_from_uri(str(source)) or ""
    if "." not in name:
        return default
    ext = name.rsplit(".", 1)[-1]
    return ext if _EXTENSION.match(ext) else default


def generate_photo_filename(
    source: PhotoSource,
    prefix: str = "img",
    now_ms: Optional[int] = None,
    rng: Optional[random.Random] = None,
) -> str:
    """
    Build a unique filename ``{prefix}_{timestamp}_{suffix}.{ext}``.

    The timestamp is milliseconds since the epoch and the suffix six random
    base-36 characters.
    """
    rng = rng or random
    timestamp = now_ms if now_ms is not None else int(time.time() * 1000)
    suffix = "".join(rng.choice(_SUFFIX_ALPHABET) for _ in range(6))
    return f"{prefix}_{timestamp}_{suffix}.{extension_for(source)}"


def uri_to_path(uri: str) -> Optional[Path]:
    """Filesystem path for a file:// URI or an absolute path, else None."""
    if uri.startswith("/"):
        return Path(uri)
    parsed = urlparse(uri)
    if parsed.scheme.lower() == "file":
        return Path(url2pathname(parsed.path))
    return None


def path_to_uri(path: Path) -> str:
    return Path(path).resolve().as_uri()
