"""
Filter state models
Structured filter criteria grouped into five categories.
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple, Union

from pydantic import BaseModel, Field


class CombinationMode(str, Enum):
    """How populated filter categories are combined"""
    AND = "AND"
    OR = "OR"


class FilterCategory(str, Enum):
    """Top-level filter categories"""
    SEMANTIC = "semantic"
    SPATIAL = "spatial"
    TEMPORAL = "temporal"
    PEOPLE = "people"
    TECHNICAL = "technical"


class DateRange(BaseModel):
    """Inclusive capture-time window; either bound may be open"""

    start: Optional[datetime] = None
    end: Optional[datetime] = None

    def is_set(self) -> bool:
        return self.start is not None or self.end is not None


class GeoFilter(BaseModel):
    """Circle around a point"""

    lat: float = Field(..., ge=-90.0, le=90.0)
    lng: float = Field(..., ge=-180.0, le=180.0)
    radius_km: float = Field(default=10.0, gt=0.0)


class SemanticFilters(BaseModel):
    keywords: List[str] = Field(default_factory=list)
    objects: List[str] = Field(default_factory=list)
    scenes: List[str] = Field(default_factory=list)


class SpatialFilters(BaseModel):
    location: Optional[str] = None
    coordinates: Optional[GeoFilter] = None


class TemporalFilters(BaseModel):
    date_range: Optional[DateRange] = None


class PeopleFilters(BaseModel):
    named_people: List[str] = Field(default_factory=list)


class TechnicalFilters(BaseModel):
    camera: Optional[str] = None
    file_type: List[str] = Field(default_factory=list)


# (category, attribute on the category model, index field it is matched against)
FILTER_FIELDS: List[Tuple[FilterCategory, str, str]] = [
    (FilterCategory.SEMANTIC, "keywords", "keywords"),
    (FilterCategory.SEMANTIC, "objects", "objects"),
    (FilterCategory.SEMANTIC, "scenes", "scenes"),
    (FilterCategory.SPATIAL, "location", "location"),
    (FilterCategory.SPATIAL, "coordinates", "coordinates"),
    (FilterCategory.TEMPORAL, "date_range", "date_range"),
    (FilterCategory.PEOPLE, "named_people", "people"),
    (FilterCategory.TECHNICAL, "camera", "camera"),
    (FilterCategory.TECHNICAL, "file_type", "file_type"),
]


def _is_populated(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, DateRange):
        return value.is_set()
    if isinstance(value, (list, str)):
        return len(value) > 0
    return True


class FilterState(BaseModel):
    """Current filter criteria, one sub-model per category"""

    semantic: SemanticFilters = Field(default_factory=SemanticFilters)
    spatial: SpatialFilters = Field(default_factory=SpatialFilters)
    temporal: TemporalFilters = Field(default_factory=TemporalFilters)
    people: PeopleFilters = Field(default_factory=PeopleFilters)
    technical: TechnicalFilters = Field(default_factory=TechnicalFilters)

    def populated_fields(self) -> List[Tuple[FilterCategory, str, str, Any]]:
        """Return (category, attribute, index field, value) for every populated criterion"""
        fields = []
        for category, attribute, index_field in FILTER_FIELDS:
            value = getattr(getattr(self, category.value), attribute)
            if _is_populated(value):
                fields.append((category, attribute, index_field, value))
        return fields

    def active_categories(self) -> List[FilterCategory]:
        seen: List[FilterCategory] = []
        for category, _, _, _ in self.populated_fields():
            if category not in seen:
                seen.append(category)
        return seen

    def is_empty(self) -> bool:
        return not self.populated_fields()

    def merge(self, partial: Union["FilterState", Dict[str, Any]]) -> "FilterState":
        """
        Return a new state with ``partial`` applied on top of this one

        Only the fields named in ``partial`` change; ``None`` clears a field.
        """
        if isinstance(partial, FilterState):
            partial = partial.model_dump(exclude_unset=True)

        merged = self.model_dump()
        for category, values in partial.items():
            if category not in merged:
                raise ValueError(f"Unknown filter category: {category}")
            if values is None:
                merged[category] = {}
                continue
            for key, value in dict(values).items():
                if value is None:
                    merged[category].pop(key, None)
                else:
                    merged[category][key] = value

        return FilterState.model_validate(merged)

    class Config:
        json_schema_extra = {
            "example": {
                "semantic": {"keywords": ["sunset"], "objects": [], "scenes": ["beach"]},
                "spatial": {"location": "malibu", "coordinates": None},
                "temporal": {"date_range": {"start": "2024-06-01T00:00:00", "end": "2024-08-31T23:59:59"}},
                "people": {"named_people": []},
                "technical": {"camera": None, "file_type": ["jpg"]}
            }
        }


class FilterSnapshot(BaseModel):
    """Filter state plus combination mode, as propagated and persisted"""

    filters: FilterState = Field(default_factory=FilterState)
    combination_mode: CombinationMode = CombinationMode.AND
