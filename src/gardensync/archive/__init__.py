"""
Backup archive packing and unpacking.
"""

from .codec import (
    ArchiveCodec,
    NamedBlob,
    PackedArchive,
    UnpackResult,
    archive_filename,
    encrypt_bytes,
    decrypt_bytes,
    is_encrypted,
)

__all__ = [
    "ArchiveCodec",
    "NamedBlob",
    "PackedArchive",
    "UnpackResult",
    "archive_filename",
    "encrypt_bytes",
    "decrypt_bytes",
    "is_encrypted",
]
