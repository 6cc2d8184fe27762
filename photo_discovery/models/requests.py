"""
Request models for the agent API
"""
from pydantic import BaseModel, Field, model_validator
from typing import Optional, Dict, Any, List

from photo_discovery.models.filters import CombinationMode, FilterState
from photo_discovery.models.search import SearchOptions


class SearchRequest(BaseModel):
    """Request model for search endpoint"""

    query: Optional[str] = Field(default=None, description="Natural-language query text")
    filters: Optional[FilterState] = Field(
        default=None,
        description="Structured filters merged over whatever the query implies"
    )
    combination_mode: Optional[CombinationMode] = None
    options: SearchOptions = Field(default_factory=SearchOptions)

    class Config:
        json_schema_extra = {
            "example": {
                "query": "sunset beach photos from last summer",
                "filters": {"technical": {"file_type": ["jpg"]}},
                "options": {"max_results": 20}
            }
        }


class BulkSelectRequest(BaseModel):
    """Request model for selection endpoint"""

    photo_ids: Optional[List[str]] = None
    select_all: bool = False

    @model_validator(mode="after")
    def check_target(self):
        if not self.select_all and self.photo_ids is None:
            raise ValueError("Provide photo_ids or set select_all")
        return self


class CommandRequest(BaseModel):
    """Request model for command parsing endpoint"""

    text: str = Field(..., min_length=1, description="Bulk-action sentence")
    context: Optional[Dict[str, Any]] = Field(
        default=None,
        description="Prior search context: last_query, current_location"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "text": "add tags vacation and family to selected photos",
                "context": {"last_query": "beach sunset"}
            }
        }


class BulkOperationRequest(BaseModel):
    """Request model for bulk execution endpoint"""

    operation: str = Field(..., description="Operation type or a natural-language command")
    parameters: Dict[str, Any] = Field(default_factory=dict)
    confirmed: bool = Field(
        default=False,
        description="Pre-approve confirmation for destructive or oversized operations"
    )

    class Config:
        json_schema_extra = {
            "example": {
                "operation": "tag",
                "parameters": {"tags": ["vacation"], "action": "add"},
                "confirmed": False
            }
        }
