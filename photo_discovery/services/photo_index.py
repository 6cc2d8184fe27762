"""
Photo Index
Immutable searchable snapshot over photo metadata. Updates build a new
snapshot; IndexHandle swaps the reference wholesale so readers holding the
old snapshot are never affected.
"""
from collections import Counter
from dataclasses import dataclass
from datetime import datetime, timezone
from types import MappingProxyType
from typing import Dict, Iterable, Iterator, List, Mapping, Optional, Tuple

from photo_discovery.models.photo import Coordinates, Photo
import logging

logger = logging.getLogger(__name__)


# Text fields indexed per photo
TEXT_FIELDS = ("keywords", "objects", "scenes", "people", "location", "camera", "file_type")

FILE_TYPE_ALIASES = {"jpeg": "jpg", "tif": "tiff"}


def normalize_file_type(value: str) -> str:
    value = value.strip().lower().lstrip(".")
    return FILE_TYPE_ALIASES.get(value, value)


def to_naive_utc(value: Optional[datetime]) -> Optional[datetime]:
    """Aware datetimes are converted to UTC; naive ones are taken as UTC already"""
    if value is None or value.tzinfo is None:
        return value
    return value.astimezone(timezone.utc).replace(tzinfo=None)


@dataclass(frozen=True)
class IndexedPhoto:
    """One photo as the search engine sees it"""
    position: int
    photo: Photo
    fields: Mapping[str, Tuple[str, ...]]
    searchable: Mapping[str, str]
    taken_at: Optional[datetime]
    coordinates: Optional[Coordinates]
    confidence: float

    @classmethod
    def from_photo(cls, photo: Photo, position: int) -> "IndexedPhoto":
        metadata = photo.metadata
        raw = {
            "keywords": metadata.keywords,
            "objects": metadata.objects,
            "scenes": metadata.scenes,
            "people": metadata.people,
            "location": [metadata.location] if metadata.location else [],
            "camera": [metadata.camera] if metadata.camera else [],
            "file_type": [normalize_file_type(photo.file_type)] if photo.file_type else [],
        }
        fields = {
            name: tuple(dict.fromkeys(value.strip().lower() for value in values if value.strip()))
            for name, values in raw.items()
        }
        return cls(
            position=position,
            photo=photo,
            fields=MappingProxyType(fields),
            searchable=MappingProxyType({name: " ".join(values) for name, values in fields.items()}),
            taken_at=to_naive_utc(metadata.taken_at),
            coordinates=metadata.coordinates,
            confidence=metadata.confidence,
        )


class PhotoIndex:
    """
    Immutable index snapshot

    build(), update() and remove() all return new PhotoIndex objects; an
    existing snapshot never changes after construction.
    """

    __slots__ = ("_entries", "_by_id", "_cardinalities", "_term_frequencies", "built_at")

    def __init__(self, entries: Iterable[IndexedPhoto], built_at: Optional[datetime] = None):
        self._entries: Tuple[IndexedPhoto, ...] = tuple(entries)
        self._by_id = MappingProxyType({entry.photo.id: entry for entry in self._entries})

        frequencies: Dict[str, Counter] = {name: Counter() for name in TEXT_FIELDS}
        for entry in self._entries:
            for name in TEXT_FIELDS:
                frequencies[name].update(entry.fields[name])

        self._term_frequencies = MappingProxyType({
            name: MappingProxyType(dict(counter)) for name, counter in frequencies.items()
        })
        self._cardinalities = MappingProxyType({
            name: len(counter) for name, counter in frequencies.items()
        })
        self.built_at = built_at or datetime.now()

    @classmethod
    def build(cls, photos: Iterable[Photo]) -> "PhotoIndex":
        """
        Build a snapshot from a photo collection

        A repeated photo id keeps its first position and its last metadata.
        """
        positions: Dict[str, int] = {}
        latest: Dict[str, Photo] = {}
        for photo in photos:
            if photo.id in positions:
                logger.warning(f"Duplicate photo id {photo.id} in collection; keeping latest metadata")
            else:
                positions[photo.id] = len(positions)
            latest[photo.id] = photo

        entries = [
            IndexedPhoto.from_photo(latest[photo_id], position)
            for photo_id, position in positions.items()
        ]
        index = cls(entries)
        logger.info(f"Built photo index: {index.photo_count} photos, cardinalities={dict(index.cardinalities)}")
        return index

    def update(self, photo: Photo) -> "PhotoIndex":
        """Return a new snapshot with ``photo`` replaced, or appended if new"""
        existing = self._by_id.get(photo.id)
        if existing is not None:
            entries = [
                IndexedPhoto.from_photo(photo, entry.position) if entry.photo.id == photo.id else entry
                for entry in self._entries
            ]
        else:
            entries = list(self._entries) + [IndexedPhoto.from_photo(photo, len(self._entries))]
        return PhotoIndex(entries)

    def update_many(self, photos: Iterable[Photo]) -> "PhotoIndex":
        index = self
        for photo in photos:
            index = index.update(photo)
        return index

    def remove(self, photo_id: str) -> "PhotoIndex":
        """Return a new snapshot without ``photo_id``; positions are compacted"""
        if photo_id not in self._by_id:
            return self
        remaining = [entry for entry in self._entries if entry.photo.id != photo_id]
        return PhotoIndex(
            IndexedPhoto(
                position=position,
                photo=entry.photo,
                fields=entry.fields,
                searchable=entry.searchable,
                taken_at=entry.taken_at,
                coordinates=entry.coordinates,
                confidence=entry.confidence,
            )
            for position, entry in enumerate(remaining)
        )

    # ------------------------------------------------------------------
    # Read access
    # ------------------------------------------------------------------

    @property
    def entries(self) -> Tuple[IndexedPhoto, ...]:
        return self._entries

    @property
    def photos(self) -> List[Photo]:
        return [entry.photo for entry in self._entries]

    @property
    def photo_count(self) -> int:
        return len(self._entries)

    @property
    def cardinalities(self) -> Mapping[str, int]:
        return self._cardinalities

    @property
    def term_frequencies(self) -> Mapping[str, Mapping[str, int]]:
        return self._term_frequencies

    def get(self, photo_id: str) -> Optional[Photo]:
        entry = self._by_id.get(photo_id)
        return entry.photo if entry else None

    def vocabulary(self) -> Dict[str, List[str]]:
        """Distinct values per text field, most frequent first"""
        return {
            name: [term for term, _ in sorted(counts.items(), key=lambda item: (-item[1], item[0]))]
            for name, counts in self._term_frequencies.items()
        }

    def stats(self) -> Dict[str, object]:
        return {
            "photo_count": self.photo_count,
            "cardinalities": dict(self._cardinalities),
            "built_at": self.built_at.isoformat(),
        }

    def __contains__(self, photo_id: object) -> bool:
        return photo_id in self._by_id

    def __len__(self) -> int:
        return len(self._entries)

    def __iter__(self) -> Iterator[IndexedPhoto]:
        return iter(self._entries)


class IndexHandle:
    """
    Single reference to the current index snapshot

    Mutations build a new snapshot and replace the reference in one
    assignment; callers that captured ``current`` keep reading their snapshot.
    """

    def __init__(self, index: Optional[PhotoIndex] = None):
        self._index = index
        self.version = 0 if index is None else 1

    @property
    def current(self) -> Optional[PhotoIndex]:
        return self._index

    def swap(self, index: PhotoIndex) -> Optional[PhotoIndex]:
        previous, self._index = self._index, index
        self.version += 1
        logger.info(f"Swapped photo index to version {self.version} ({index.photo_count} photos)")
        return previous

    def build(self, photos: Iterable[Photo]) -> PhotoIndex:
        index = PhotoIndex.build(photos)
        self.swap(index)
        return index

    def update(self, photo: Photo) -> PhotoIndex:
        base = self._index or PhotoIndex([])
        index = base.update(photo)
        self.swap(index)
        return index

    def update_many(self, photos: Iterable[Photo]) -> PhotoIndex:
        base = self._index or PhotoIndex([])
        index = base.update_many(photos)
        self.swap(index)
        return index

    def remove(self, photo_id: str) -> Optional[PhotoIndex]:
        if self._index is None:
            return None
        index = self._index.remove(photo_id)
        if index is not self._index:
            self.swap(index)
        return index
