"""
Response models for the agent API
"""
from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List

from photo_discovery.models.operations import OperationStatus, PhotoError
from photo_discovery.models.query import Entity, IntentType
from photo_discovery.models.search import RankedPhoto


class ParsedQuery(BaseModel):
    """Summary of how the query text was understood"""

    intent: IntentType
    entities: List[Entity] = Field(default_factory=list)
    confidence: float = Field(..., ge=0.0, le=1.0)


class SearchResponse(BaseModel):
    """Response from search endpoint"""

    results: List[RankedPhoto] = Field(default_factory=list)
    total_count: int = 0
    query_parsed: Optional[ParsedQuery] = None
    execution_time: float = Field(default=0.0, description="Milliseconds")

    class Config:
        json_schema_extra = {
            "example": {
                "results": [],
                "total_count": 0,
                "query_parsed": {"intent": "search", "entities": [], "confidence": 0.82},
                "execution_time": 2.4
            }
        }


class BulkSelectResponse(BaseModel):
    """Response from selection endpoint"""

    selected_count: int
    selected_photos: List[str] = Field(default_factory=list)
    available_operations: List[str] = Field(default_factory=list)


class BulkOperationResponse(BaseModel):
    """Response from bulk execution endpoint"""

    success: bool
    processed_count: int = 0
    errors: List[PhotoError] = Field(default_factory=list)
    operation_id: Optional[str] = None
    status: Optional[OperationStatus] = None
    warnings: List[str] = Field(default_factory=list)

    class Config:
        json_schema_extra = {
            "example": {
                "success": True,
                "processed_count": 120,
                "errors": [],
                "operation_id": "op-3f2c",
                "status": "completed"
            }
        }


class ErrorResponse(BaseModel):
    """Error body returned for PhotoDiscoveryError"""

    code: str
    message: str
    details: Optional[Dict[str, Any]] = None
