"""
Photo library collaborator
The storage side of bulk operations: applies one operation to one photo and
hands back the data needed to invert it.
"""
import asyncio
from typing import Any, Callable, Dict, Iterable, List, Optional, Protocol

from photo_discovery.errors import BackendError, BackendUnavailableError
from photo_discovery.models.operations import OperationType
from photo_discovery.models.photo import Photo, PhotoMetadata
import logging

logger = logging.getLogger(__name__)


class OperationBackend(Protocol):
    """What the bulk executor needs from storage"""

    def get_photo(self, photo_id: str) -> Optional[Photo]:
        ...

    async def apply(self, operation_type: OperationType, photo: Photo, parameters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        """Apply to one photo; return inversion data, or None when nothing can be inverted"""
        ...

    async def revert(self, operation_type: OperationType, photo_id: str, inversion: Dict[str, Any]) -> None:
        ...


Analyzer = Callable[[Photo, Dict[str, Any]], PhotoMetadata]


class InMemoryPhotoLibrary:
    """
    Reference backend holding photos and albums in memory

    Args:
        photos: Initial collection
        analyzer: Produces fresh metadata for the analyze operation
        latency_seconds: Simulated per-photo I/O delay
    """

    def __init__(
        self,
        photos: Optional[Iterable[Photo]] = None,
        analyzer: Optional[Analyzer] = None,
        latency_seconds: float = 0.0,
    ):
        self._photos: Dict[str, Photo] = {}
        for photo in photos or []:
            self._photos[photo.id] = photo
        self.albums: Dict[str, List[str]] = {}
        self.downloads: List[Dict[str, Any]] = []
        self.exports: List[Dict[str, Any]] = []
        self.analyzer = analyzer
        self.latency_seconds = latency_seconds

        # Failure injection
        self.failures: Dict[str, BackendError] = {}
        self.unavailable = False

        self._listeners: List[Callable[[str, str, Optional[Photo]], None]] = []

    # ------------------------------------------------------------------
    # Collection access
    # ------------------------------------------------------------------

    @property
    def photos(self) -> List[Photo]:
        return list(self._photos.values())

    def get_photo(self, photo_id: str) -> Optional[Photo]:
        return self._photos.get(photo_id)

    def add_photos(self, photos: Iterable[Photo]):
        for photo in photos:
            self._photos[photo.id] = photo
            self._notify("updated", photo.id, photo)

    def subscribe(self, listener: Callable[[str, str, Optional[Photo]], None]) -> Callable[[], None]:
        """Listener receives (event, photo_id, photo); event is 'updated' or 'removed'"""
        self._listeners.append(listener)

        def unsubscribe():
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def _notify(self, event: str, photo_id: str, photo: Optional[Photo]):
        for listener in list(self._listeners):
            listener(event, photo_id, photo)

    def _replace(self, photo: Photo, metadata: PhotoMetadata):
        updated = photo.model_copy(update={"metadata": metadata})
        self._photos[photo.id] = updated
        self._notify("updated", photo.id, updated)

    # ------------------------------------------------------------------
    # OperationBackend
    # ------------------------------------------------------------------

    async def apply(self, operation_type: OperationType, photo: Photo, parameters: Dict[str, Any]) -> Optional[Dict[str, Any]]:
        if self.unavailable:
            raise BackendUnavailableError("Photo library is unavailable")
        if self.latency_seconds:
            await asyncio.sleep(self.latency_seconds)
        if photo.id in self.failures:
            raise self.failures[photo.id]

        current = self._photos.get(photo.id)
        if current is None:
            raise BackendError(f"Photo {photo.id} no longer exists")

        handler = {
            OperationType.TAG: self._apply_tag,
            OperationType.ALBUM_CREATE: self._apply_album_create,
            OperationType.ALBUM_ADD: self._apply_album_add,
            OperationType.DOWNLOAD: self._apply_download,
            OperationType.EXPORT_METADATA: self._apply_export,
            OperationType.ANALYZE: self._apply_analyze,
            OperationType.DELETE: self._apply_delete,
        }.get(operation_type)
        if handler is None:
            raise BackendError(f"Unsupported operation {operation_type.value}")

        return handler(current, parameters)

    async def revert(self, operation_type: OperationType, photo_id: str, inversion: Dict[str, Any]) -> None:
        if self.unavailable:
            raise BackendUnavailableError("Photo library is unavailable")

        if operation_type in (OperationType.TAG, OperationType.ANALYZE):
            photo = self._photos.get(photo_id)
            if photo is None:
                raise BackendError(f"Photo {photo_id} no longer exists")
            if operation_type == OperationType.TAG:
                metadata = photo.metadata.model_copy(update={"keywords": list(inversion["keywords"])})
            else:
                metadata = PhotoMetadata.model_validate(inversion["metadata"])
            self._replace(photo, metadata)
            return

        if operation_type in (OperationType.ALBUM_CREATE, OperationType.ALBUM_ADD):
            album = self.albums.get(inversion["album"])
            if album is None:
                return
            if inversion.get("added") and photo_id in album:
                album.remove(photo_id)
            if inversion.get("created") and not album:
                del self.albums[inversion["album"]]
            return

        raise BackendError(f"Operation {operation_type.value} cannot be reverted")

    # ------------------------------------------------------------------
    # Per-operation handlers
    # ------------------------------------------------------------------

    def _apply_tag(self, photo: Photo, parameters: Dict[str, Any]) -> Dict[str, Any]:
        tags = [str(tag).strip() for tag in parameters.get("tags", []) if str(tag).strip()]
        previous = list(photo.metadata.keywords)

        if parameters.get("action", "add") == "remove":
            drop = {tag.lower() for tag in tags}
            keywords = [keyword for keyword in previous if keyword.lower() not in drop]
        else:
            existing = {keyword.lower() for keyword in previous}
            keywords = previous + [tag for tag in tags if tag.lower() not in existing]

        self._replace(photo, photo.metadata.model_copy(update={"keywords": keywords}))
        return {"keywords": previous}

    def _apply_album_create(self, photo: Photo, parameters: Dict[str, Any]) -> Dict[str, Any]:
        name = parameters.get("album_name") or "New Album"
        created = name not in self.albums
        album = self.albums.setdefault(name, [])
        added = False
        if parameters.get("add_photos", True) and photo.id not in album:
            album.append(photo.id)
            added = True
        return {"album": name, "created": created, "added": added}

    def _apply_album_add(self, photo: Photo, parameters: Dict[str, Any]) -> Dict[str, Any]:
        name = parameters.get("album_name")
        if name not in self.albums:
            raise BackendError(f"Album '{name}' does not exist")
        album = self.albums[name]
        added = photo.id not in album
        if added:
            album.append(photo.id)
        return {"album": name, "created": False, "added": added}

    def _apply_download(self, photo: Photo, parameters: Dict[str, Any]) -> None:
        self.downloads.append({
            "photo_id": photo.id,
            "filename": photo.filename,
            "format": parameters.get("format", "zip"),
            "resolution": parameters.get("resolution", "original"),
        })
        return None

    def _apply_export(self, photo: Photo, parameters: Dict[str, Any]) -> None:
        self.exports.append({
            "photo_id": photo.id,
            "format": parameters.get("format", "json"),
            "metadata": photo.metadata.model_dump(mode="json"),
        })
        return None

    def _apply_analyze(self, photo: Photo, parameters: Dict[str, Any]) -> Dict[str, Any]:
        previous = photo.metadata.model_dump(mode="json")
        if self.analyzer is not None:
            self._replace(photo, self.analyzer(photo, parameters))
        return {"metadata": previous}

    def _apply_delete(self, photo: Photo, parameters: Dict[str, Any]) -> None:
        del self._photos[photo.id]
        for album in self.albums.values():
            if photo.id in album:
                album.remove(photo.id)
        self._notify("removed", photo.id, None)
        return None
