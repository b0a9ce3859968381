"""
Persistent media library capability.

Models the platform photo library that survives app reinstalls: assets
with numeric ids and ``content://media/{id}`` URIs, named albums, a
permission gate and cursor-paged listing. ``DirectoryMediaLibrary``
implements it on a plain directory.
"""

import json
import logging
import shutil
import threading
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

from ..core.exceptions import StorageError


logger = logging.getLogger(__name__)

CONTENT_PREFIX = "content://media/"


@dataclass
class Asset:
    """A media library asset."""
    id: str
    filename: str
    uri: str
    size: int = 0


@dataclass
class Album:
    """A named group of assets."""
    id: str
    title: str


@dataclass
class AssetPage:
    """One page of a paged asset listing."""
    assets: List[Asset] = field(default_factory=list)
    has_next_page: bool = False
    end_cursor: Optional[str] = None


def asset_id_from_uri(uri: str) -> Optional[str]:
    """Asset id from a content handle (last path component)."""
    if not uri:
        return None
    if not uri.startswith("content://"):
        return uri if uri.isdigit() else None
    clean = uri.split("?")[0].split("#")[0]
    return clean.rstrip("/").split("/")[-1] or None


class MediaLibrary(ABC):
    """Platform media library operations used by the photo locker."""

    @abstractmethod
    def request_permission(self) -> bool:
        """Ask for photo access; False means use app-private storage."""
        pass

    @abstractmethod
    def create_asset(self, source: Path) -> Asset:
        """Copy a local file into the library, keeping its filename."""
        pass

    @abstractmethod
    def get_asset_info(self, id_or_uri: str) -> Optional[Asset]:
        """Look an asset up by id or content handle."""
        pass

    @abstractmethod
    def delete_assets(self, asset_ids: List[str]) -> bool:
        pass

    @abstractmethod
    def asset_path(self, asset: Asset) -> Path:
        """Filesystem path of the asset's bytes."""
        pass

    @abstractmethod
    def get_album(self, title: str) -> Optional[Album]:
        pass

    @abstractmethod
    def create_album(self, title: str, initial_asset: Asset) -> Album:
        pass

    @abstractmethod
    def add_assets_to_album(self, assets: List[Asset], album: Album) -> None:
        pass

    @abstractmethod
    def get_assets(self, first: int, after: Optional[str] = None, album: Optional[Album] = None) -> AssetPage:
        """
        List assets in id order.

        Args:
            first: Page size
            after: Cursor (end_cursor of the previous page)
            album: Restrict to one album
        """
        pass


class DirectoryMediaLibrary(MediaLibrary):
    """
    Media library stored in a directory.

    Layout::

        <root>/assets/<id>/<filename>
        <root>/albums.json          {"<title>": {"id": "...", "assets": [...]}}
    """

    FIRST_ID = 1000

    def __init__(self, root: Path, permission_granted: bool = True):
        self.root = Path(root)
        self.permission_granted = permission_granted
        self._assets_dir = self.root / "assets"
        self._albums_path = self.root / "albums.json"
        self._lock = threading.RLock()

    def request_permission(self) -> bool:
        if not self.permission_granted:
            return False
        try:
            self._assets_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            logger.warning(f"Media library at {self.root} is not writable: {e}")
            return False
        return True

    def _asset_ids(self) -> List[str]:
        if not self._assets_dir.exists():
            return []
        return sorted(
            (p.name for p in self._assets_dir.iterdir() if p.is_dir() and p.name.isdigit()),
            key=int,
        )

    def _load_asset(self, asset_id: str) -> Optional[Asset]:
        asset_dir = self._assets_dir / asset_id
        if not asset_dir.is_dir():
            return None
        files = [p for p in asset_dir.iterdir() if p.is_file()]
        if not files:
            return None
        path = files[0]
        return Asset(
            id=asset_id,
            filename=path.name,
            uri=f"{CONTENT_PREFIX}{asset_id}",
            size=path.stat().st_size,
        )

    def create_asset(self, source: Path) -> Asset:
        source = Path(source)
        if not source.is_file():
            raise StorageError(f"Cannot create asset, source missing: {source}")
        with self._lock:
            ids = self._asset_ids()
            asset_id = str(int(ids[-1]) + 1 if ids else self.FIRST_ID)
            asset_dir = self._assets_dir / asset_id
            try:
                asset_dir.mkdir(parents=True)
                shutil.copyfile(source, asset_dir / source.name)
            except OSError as e:
                shutil.rmtree(asset_dir, ignore_errors=True)
                raise StorageError(f"Failed to create asset from {source}: {e}") from e
        logger.debug(f"Created media asset {asset_id} ({source.name})")
        return self._load_asset(asset_id)

    def get_asset_info(self, id_or_uri: str) -> Optional[Asset]:
        asset_id = asset_id_from_uri(id_or_uri)
        if not asset_id or not asset_id.isdigit():
            return None
        return self._load_asset(asset_id)

    def asset_path(self, asset: Asset) -> Path:
        return self._assets_dir / asset.id / asset.filename

    def delete_assets(self, asset_ids: List[str]) -> bool:
        with self._lock:
            albums = self._read_albums()
            for asset_id in asset_ids:
                shutil.rmtree(self._assets_dir / asset_id, ignore_errors=True)
                for album in albums.values():
                    if asset_id in album["assets"]:
                        album["assets"].remove(asset_id)
            self._write_albums(albums)
        return True

    def _read_albums(self) -> Dict[str, Dict]:
        if not self._albums_path.exists():
            return {}
        try:
            with open(self._albums_path, "r", encoding="utf-8") as f:
                return json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Unreadable album index, starting fresh: {e}")
            return {}

    def _write_albums(self, albums: Dict[str, Dict]) -> None:
        self.root.mkdir(parents=True, exist_ok=True)
        with open(self._albums_path, "w", encoding="utf-8") as f:
            json.dump(albums, f, indent=2)

    def get_album(self, title: str) -> Optional[Album]:
        with self._lock:
            entry = self._read_albums().get(title)
        return Album(entry["id"], title) if entry else None

    def create_album(self, title: str, initial_asset: Asset) -> Album:
        with self._lock:
            albums = self._read_albums()
            entry = albums.setdefault(title, {"id": str(len(albums) + 1), "assets": []})
            if initial_asset.id not in entry["assets"]:
                entry["assets"].append(initial_asset.id)
            self._write_albums(albums)
        return Album(entry["id"], title)

    def add_assets_to_album(self, assets: List[Asset], album: Album) -> None:
        with self._lock:
            albums = self._read_albums()
            entry = albums.get(album.title)
            if entry is None:
                raise StorageError(f"Album not found: {album.title}")
            for asset in assets:
                if asset.id not in entry["assets"]:
                    entry["assets"].append(asset.id)
            self._write_albums(albums)

    def get_assets(self, first: int, after: Optional[str] = None, album: Optional[Album] = None) -> AssetPage:
        with self._lock:
            ids = self._asset_ids()
            if album is not None:
                members = set(self._read_albums().get(album.title, {}).get("assets", []))
                ids = [i for i in ids if i in members]
        if after is not None:
            ids = [i for i in ids if int(i) > int(after)]
        page_ids = ids[:first]
        assets = [a for a in (self._load_asset(i) for i in page_ids) if a is not None]
        has_next = len(ids) > first
        return AssetPage(
            assets=assets,
            has_next_page=has_next,
            end_cursor=page_ids[-1] if page_ids else None,
        )
