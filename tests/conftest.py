"""
Shared fixtures for Photo Discovery tests
"""
from datetime import datetime

import pytest

from photo_discovery.config import Settings
from photo_discovery.models.photo import Coordinates, Photo, PhotoMetadata
from photo_discovery.services.agent_state import AgentStateRegistry
from photo_discovery.services.discovery_service import PhotoDiscoveryService
from photo_discovery.services.photo_index import PhotoIndex
from photo_discovery.services.photo_library import InMemoryPhotoLibrary
from photo_discovery.services.query_parser import QueryParser


# Tuesday; last completed summer is 2024
FIXED_NOW = datetime(2024, 10, 15, 12, 0, 0)


def fixed_now() -> datetime:
    return FIXED_NOW


def _make_photos(count: int, prefix: str = "bulk") -> list:
    return [
        Photo(
            id=f"{prefix}-{i:04d}",
            filename=f"IMG_{i:04d}.jpg",
            metadata=PhotoMetadata(keywords=["beach"], confidence=0.8),
        )
        for i in range(count)
    ]


@pytest.fixture
def settings():
    """Default settings with nothing read from disk"""
    return Settings(log_dir=None, filter_state_path=None)


@pytest.fixture
def photos():
    """Small mixed collection"""
    return [
        Photo(
            id="photo-001",
            filename="IMG_0001.jpg",
            metadata=PhotoMetadata(
                keywords=["sunset", "beach"],
                scenes=["coast"],
                location="Malibu",
                camera="Canon EOS R5",
                taken_at=datetime(2024, 7, 14, 19, 42),
                confidence=0.92,
                coordinates=Coordinates(lat=34.03, lng=-118.78),
            ),
        ),
        Photo(
            id="photo-002",
            filename="IMG_0002.jpg",
            metadata=PhotoMetadata(
                keywords=["beach", "volleyball"],
                people=["Alice"],
                location="Santa Monica",
                camera="iPhone 15 Pro",
                taken_at=datetime(2024, 8, 2, 15, 10),
                confidence=0.85,
                coordinates=Coordinates(lat=34.01, lng=-118.49),
            ),
        ),
        Photo(
            id="photo-003",
            filename="DSC_0003.raw",
            metadata=PhotoMetadata(
                keywords=["mountain", "snow"],
                scenes=["alpine"],
                location="Zermatt",
                camera="Nikon Z6",
                taken_at=datetime(2023, 12, 28, 10, 0),
                confidence=0.8,
            ),
        ),
        Photo(
            id="photo-004",
            filename="IMG_0004.png",
            metadata=PhotoMetadata(
                keywords=["birthday", "cake"],
                people=["Alice", "Bob"],
                location="Boston",
                taken_at=datetime(2024, 3, 10, 18, 30),
                confidence=0.7,
            ),
        ),
        Photo(
            id="photo-005",
            filename="IMG_0005.jpeg",
            metadata=PhotoMetadata(
                keywords=["sunset", "mountain"],
                location="Zermatt",
                taken_at=datetime(2024, 7, 20, 21, 5),
                confidence=0.9,
            ),
        ),
        Photo(id="photo-006", filename="scan.tiff"),
    ]


@pytest.fixture
def index(photos):
    return PhotoIndex.build(photos)


@pytest.fixture
def parser(settings):
    """Parser with a fixed clock for relative dates"""
    return QueryParser(settings, now=fixed_now)


@pytest.fixture
def library(photos):
    return InMemoryPhotoLibrary(photos)


@pytest.fixture
def registry():
    """Isolated agent registry"""
    return AgentStateRegistry()


@pytest.fixture
def make_photos():
    """Factory for plain photos: make_photos(count, prefix)"""
    return _make_photos


@pytest.fixture
def now():
    """Fixed clock for relative date expressions"""
    return fixed_now


@pytest.fixture
def service(library, settings, registry):
    """Discovery service over the mixed collection, registered in an isolated registry"""
    service = PhotoDiscoveryService(library, settings=settings, registry=registry, now=fixed_now)
    yield service
    service.close()
