"""
Search result models
"""
from typing import Dict, List, Optional

from pydantic import BaseModel, Field

from photo_discovery.models.filters import CombinationMode, FilterState
from photo_discovery.models.photo import Photo


class PerformanceMetrics(BaseModel):
    """Per-phase timings in milliseconds"""

    index_lookup_time: float = 0.0
    fuzzy_match_time: float = 0.0
    sorting_time: float = 0.0


class SearchMetadata(BaseModel):
    applied_filters: FilterState = Field(default_factory=FilterState)
    combination_mode: CombinationMode = CombinationMode.AND
    matched_criteria: List[str] = Field(default_factory=list)
    performance_metrics: PerformanceMetrics = Field(default_factory=PerformanceMetrics)


class RankedPhoto(Photo):
    """A photo with its relevance to the current criteria"""

    relevance_score: float = Field(..., ge=0.0, le=1.0)
    matched_criteria: List[str] = Field(default_factory=list)
    highlighted_fields: Dict[str, List[str]] = Field(default_factory=dict)


class SearchOptions(BaseModel):
    """Per-call search options"""

    max_results: Optional[int] = Field(default=None, ge=1)
    offset: int = Field(default=0, ge=0)
    require_results: bool = Field(
        default=False,
        description="Raise NoResultsError instead of returning an empty result"
    )


class SearchResult(BaseModel):
    """Ranked search results"""

    photos: List[RankedPhoto] = Field(default_factory=list)
    total_count: int = 0
    search_time: float = Field(default=0.0, description="Wall-clock duration in milliseconds")
    query: Optional[str] = None
    search_metadata: SearchMetadata = Field(default_factory=SearchMetadata)

    @classmethod
    def empty(cls, query: Optional[str] = None, filters: Optional[FilterState] = None,
              combination_mode: CombinationMode = CombinationMode.AND) -> "SearchResult":
        return cls(
            query=query,
            search_metadata=SearchMetadata(
                applied_filters=filters or FilterState(),
                combination_mode=combination_mode,
            ),
        )

    class Config:
        json_schema_extra = {
            "example": {
                "photos": [
                    {
                        "id": "photo-001",
                        "filename": "IMG_2041.jpg",
                        "metadata": {"keywords": ["sunset", "beach"], "confidence": 0.92},
                        "relevance_score": 0.93,
                        "matched_criteria": ["semantic"],
                        "highlighted_fields": {"keywords": ["sunset", "beach"]}
                    }
                ],
                "total_count": 1,
                "search_time": 1.8,
                "query": "sunset beach photos"
            }
        }
