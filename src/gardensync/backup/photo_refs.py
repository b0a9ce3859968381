"""
Photo reference handling on records.

Plants carry ``photo_filename`` / ``photo_url``; journal entries carry
``photo_filenames`` / ``photo_urls`` plus a legacy single ``photo_url``.
Filenames are the portable part. Device-local URIs are dropped on export and
rebuilt on import.
"""

from typing import Any, Callable, Dict, List, Optional, Tuple

from ..core.models import RecordKind
from ..photos.filenames import filename_from_uri, is_remote_uri

Resolver = Callable[[str], Optional[str]]


def _is_portable(uri: Any) -> bool:
    # Remote URLs survive a device change; local handles and blobs do not
    return isinstance(uri, str) and bool(is_remote_uri(uri)) and not uri.startswith("blob:")


def _filename(uri: Any) -> Optional[str]:
    if not isinstance(uri, str) or not uri.strip() or _is_portable(uri):
        return None
    return filename_from_uri(uri.strip())


def photo_refs(record: Dict[str, Any], kind: RecordKind) -> List[Tuple[str, Optional[str]]]:
    """
    The photos a record points at, as (filename, current uri) pairs.

    The uri is None when only a filename is known.
    """
    refs: List[Tuple[str, Optional[str]]] = []
    if kind == RecordKind.PLANT:
        uri = record.get("photo_url")
        filename = record.get("photo_filename") or _filename(uri)
        if filename:
            refs.append((filename, uri if isinstance(uri, str) and not _is_portable(uri) else None))
    elif kind == RecordKind.JOURNAL:
        filenames = [f for f in record.get("photo_filenames") or [] if isinstance(f, str) and f]
        uris = [u for u in record.get("photo_urls") or [] if isinstance(u, str)]
        legacy = record.get("photo_url")
        if isinstance(legacy, str) and legacy not in uris:
            uris.append(legacy)
        local_uris = [u for u in uris if not _is_portable(u) and u.strip()]
        seen = set()
        for index, filename in enumerate(filenames):
            uri = local_uris[index] if index < len(local_uris) else None
            refs.append((filename, uri))
            seen.add(filename)
        for uri in local_uris:
            filename = _filename(uri)
            if filename and filename not in seen:
                refs.append((filename, uri))
                seen.add(filename)
    return refs


def strip_for_export(record: Dict[str, Any], kind: RecordKind) -> Dict[str, Any]:
    """Copy of a record with local photo URIs replaced by their filenames."""
    record = dict(record)
    refs = photo_refs(record, kind)
    if kind == RecordKind.PLANT:
        record["photo_filename"] = refs[0][0] if refs else record.get("photo_filename")
        if not _is_portable(record.get("photo_url")):
            record["photo_url"] = None
    elif kind == RecordKind.JOURNAL:
        record["photo_filenames"] = [filename for filename, _ in refs]
        record["photo_urls"] = [u for u in record.get("photo_urls") or [] if _is_portable(u)]
        if "photo_url" in record and not _is_portable(record.get("photo_url")):
            record["photo_url"] = None
    return record


def rewrite_for_import(
    record: Dict[str, Any],
    kind: RecordKind,
    photo_uris: Dict[str, str],
    resolver: Resolver,
) -> Dict[str, Any]:
    """
    Copy of a record with photo URIs pointing at handles valid on this device.

    Filenames found in the archive use the freshly extracted handle; others
    are resolved against local photo storage. Unresolvable photos keep their
    filename and get no URI.
    """
    def locate(filename: str, uri: Optional[str]) -> Optional[str]:
        if filename in photo_uris:
            return photo_uris[filename]
        return resolver(filename) or (resolver(uri) if uri else None)

    record = dict(record)
    refs = photo_refs(record, kind)
    if kind == RecordKind.PLANT:
        if refs:
            filename, uri = refs[0]
            record["photo_filename"] = filename
            record["photo_url"] = locate(filename, uri)
    elif kind == RecordKind.JOURNAL:
        portable = [u for u in record.get("photo_urls") or [] if _is_portable(u)]
        resolved = [u for u in (locate(f, uri) for f, uri in refs) if u]
        record["photo_filenames"] = [filename for filename, _ in refs]
        record["photo_urls"] = resolved + portable
        if "photo_url" in record:
            legacy = record.get("photo_url")
            if not _is_portable(legacy):
                record["photo_url"] = record["photo_urls"][0] if record["photo_urls"] else None
    return record
