"""
Bulk operation models
"""
from datetime import datetime
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class OperationType(str, Enum):
    """Closed set of bulk operation types"""
    DOWNLOAD = "download"
    TAG = "tag"
    ALBUM_CREATE = "album_create"
    ALBUM_ADD = "album_add"
    EXPORT_METADATA = "export_metadata"
    ANALYZE = "analyze"
    DELETE = "delete"
    UNKNOWN = "unknown"


class OperationStatus(str, Enum):
    """Lifecycle states of one operation run"""
    PENDING = "pending"
    CONFIRMING = "confirming"
    EXECUTING = "executing"
    COMPLETED = "completed"
    PARTIAL_FAILURE = "partial_failure"
    FAILED = "failed"
    CANCELLED = "cancelled"
    ROLLED_BACK = "rolled_back"


class BulkOperation(BaseModel):
    """Structured descriptor produced from one bulk-action sentence"""

    type: OperationType
    parameters: Dict[str, Any] = Field(default_factory=dict)
    confidence: float = Field(..., ge=0.0, le=1.0)
    suggestions: List[str] = Field(default_factory=list)
    suggested_parameters: Dict[str, Any] = Field(
        default_factory=dict,
        description="Context-derived values offered to the user, never applied automatically"
    )
    target_photos: List[str] = Field(default_factory=list)
    original_command: str = ""

    class Config:
        json_schema_extra = {
            "example": {
                "type": "download",
                "parameters": {"format": "zip", "target": "selected"},
                "confidence": 0.95,
                "suggestions": [],
                "target_photos": ["photo-001", "photo-002"],
                "original_command": "download all selected photos as zip"
            }
        }


class PhotoError(BaseModel):
    """Failure recorded for one photo"""

    photo_id: str
    error: str
    code: Optional[str] = None


class OperationResult(BaseModel):
    """Outcome of one operation run"""

    operation_id: str
    type: OperationType
    status: OperationStatus = OperationStatus.PENDING
    total: int = 0
    completed: int = 0
    failed: int = 0
    errors: List[PhotoError] = Field(default_factory=list)
    rollback_token: Optional[str] = None
    warnings: List[str] = Field(default_factory=list)
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def success(self) -> bool:
        return self.status == OperationStatus.COMPLETED
