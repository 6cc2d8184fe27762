"""
Photo models
Photos and their AI-generated metadata are owned by the metadata service; the
discovery pipeline only reads them.
"""
from datetime import datetime
from pathlib import PurePosixPath
from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class Coordinates(BaseModel):
    """GPS position of a photo"""

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)


class PhotoMetadata(BaseModel):
    """Semantic metadata attached to a photo"""

    keywords: List[str] = Field(default_factory=list)
    objects: List[str] = Field(default_factory=list)
    scenes: List[str] = Field(default_factory=list)
    people: List[str] = Field(default_factory=list)
    location: Optional[str] = None
    camera: Optional[str] = None
    taken_at: Optional[datetime] = None
    confidence: float = Field(default=0.0, ge=0.0, le=1.0, description="AI tagging confidence")
    coordinates: Optional[Coordinates] = None

    @field_validator("keywords", "objects", "scenes", "people")
    @classmethod
    def strip_empty_terms(cls, value: List[str]) -> List[str]:
        return [term.strip() for term in value if term and term.strip()]


class Photo(BaseModel):
    """A photo in the collection"""

    id: str = Field(..., min_length=1)
    filename: str
    metadata: PhotoMetadata = Field(default_factory=PhotoMetadata)

    @property
    def file_type(self) -> Optional[str]:
        suffix = PurePosixPath(self.filename).suffix
        return suffix[1:].lower() if suffix else None

    class Config:
        json_schema_extra = {
            "example": {
                "id": "photo-001",
                "filename": "IMG_2041.jpg",
                "metadata": {
                    "keywords": ["sunset", "beach"],
                    "objects": ["palm tree"],
                    "scenes": ["coast"],
                    "location": "Malibu",
                    "camera": "Canon EOS R5",
                    "taken_at": "2024-07-14T19:42:00",
                    "confidence": 0.92
                }
            }
        }
