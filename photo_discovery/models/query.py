"""
Query models
Entities and the parsed semantic query produced by the query parser.
"""
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, Field

from photo_discovery.models.filters import CombinationMode, FilterState


class EntityType(str, Enum):
    """Types of extracted entities"""
    DATE = "date"
    DATE_RANGE = "date_range"
    KEYWORD = "keyword"
    LOCATION = "location"
    PERSON = "person"
    COLOR = "color"
    CAMERA = "camera"
    FILE_TYPE = "file_type"
    ALBUM = "album"
    ACTION_TYPE = "action_type"


class IntentType(str, Enum):
    """Types of detected intents"""
    FILTER = "filter"
    SEARCH = "search"
    CREATE = "create"
    BULK_OPERATION = "bulk_operation"
    UNKNOWN = "unknown"


class Span(BaseModel):
    """Half-open character range into the normalized query"""

    start: int = Field(..., ge=0)
    end: int = Field(..., ge=0)

    def overlaps(self, other: "Span") -> bool:
        return self.start < other.end and other.start < self.end


class Entity(BaseModel):
    """Typed value extracted from query text"""

    type: EntityType
    value: str
    normalized_value: Optional[Union[str, Dict[str, str]]] = None
    confidence: float = Field(..., ge=0.0, le=1.0)
    span: Span

    class Config:
        json_schema_extra = {
            "example": {
                "type": "date_range",
                "value": "last summer",
                "normalized_value": {"start": "2023-06-01T00:00:00", "end": "2023-08-31T23:59:59"},
                "confidence": 1.0,
                "span": {"start": 14, "end": 25}
            }
        }


class IntentCandidate(BaseModel):
    """One scored intent rule"""

    intent: IntentType
    confidence: float = Field(..., ge=0.0, le=1.0)
    reasoning: Optional[str] = None


class SemanticQuery(BaseModel):
    """Result of parsing one natural-language query"""

    intent: IntentType
    entities: List[Entity] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)
    parameters: Dict[str, Any] = Field(default_factory=dict)
    suggested_actions: List[str] = Field(default_factory=list)
    original_query: str
    normalized_query: str = ""
    needs_clarification: bool = False
    clarification_questions: List[str] = Field(default_factory=list)

    def entities_of(self, entity_type: EntityType) -> List[Entity]:
        return [entity for entity in self.entities if entity.type == entity_type]

    @property
    def filters(self) -> FilterState:
        filters = self.parameters.get("filters")
        if isinstance(filters, FilterState):
            return filters
        if isinstance(filters, dict):
            return FilterState.model_validate(filters)
        return FilterState()

    @property
    def combination_mode(self) -> CombinationMode:
        return CombinationMode(self.parameters.get("combination_mode", CombinationMode.AND))
