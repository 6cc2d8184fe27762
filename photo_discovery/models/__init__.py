"""
Data models for Photo Discovery
"""
from .photo import Photo, PhotoMetadata, Coordinates
from .filters import (
    CombinationMode,
    FilterCategory,
    FilterState,
    FilterSnapshot,
    DateRange,
    GeoFilter,
    SemanticFilters,
    SpatialFilters,
    TemporalFilters,
    PeopleFilters,
    TechnicalFilters,
)
from .query import Entity, EntityType, IntentType, IntentCandidate, SemanticQuery, Span
from .search import RankedPhoto, SearchResult, SearchMetadata, SearchOptions, PerformanceMetrics
from .operations import BulkOperation, OperationResult, OperationStatus, OperationType, PhotoError
from .requests import SearchRequest, BulkSelectRequest, BulkOperationRequest, CommandRequest
from .responses import (
    SearchResponse,
    ParsedQuery,
    BulkSelectResponse,
    BulkOperationResponse,
    ErrorResponse,
)

__all__ = [
    # Photos
    "Photo",
    "PhotoMetadata",
    "Coordinates",
    # Filters
    "CombinationMode",
    "FilterCategory",
    "FilterState",
    "FilterSnapshot",
    "DateRange",
    "GeoFilter",
    "SemanticFilters",
    "SpatialFilters",
    "TemporalFilters",
    "PeopleFilters",
    "TechnicalFilters",
    # Entities/Intent
    "Entity",
    "EntityType",
    "IntentType",
    "IntentCandidate",
    "SemanticQuery",
    "Span",
    # Search
    "RankedPhoto",
    "SearchResult",
    "SearchMetadata",
    "SearchOptions",
    "PerformanceMetrics",
    # Operations
    "BulkOperation",
    "OperationResult",
    "OperationStatus",
    "OperationType",
    "PhotoError",
    # Request/Response
    "SearchRequest",
    "BulkSelectRequest",
    "BulkOperationRequest",
    "CommandRequest",
    "SearchResponse",
    "ParsedQuery",
    "BulkSelectResponse",
    "BulkOperationResponse",
    "ErrorResponse",
]
