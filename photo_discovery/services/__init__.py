"""
Core service modules for Photo Discovery
"""
from .entity_extraction import EntityExtractor, extract_entities
from .intent_detection import IntentDetector, detect_intent
from .query_parser import QueryParser
from .photo_index import PhotoIndex, IndexHandle
from .search_engine import SearchEngine
from .filter_state import FilterStateController, LiveSearch
from .command_parser import CommandParser
from .bulk_executor import BulkOperationExecutor
from .photo_library import InMemoryPhotoLibrary, OperationBackend
from .agent_state import AgentStateRegistry, get_registry
from .discovery_service import PhotoDiscoveryService

__all__ = [
    "EntityExtractor",
    "extract_entities",
    "IntentDetector",
    "detect_intent",
    "QueryParser",
    "PhotoIndex",
    "IndexHandle",
    "SearchEngine",
    "FilterStateController",
    "LiveSearch",
    "CommandParser",
    "BulkOperationExecutor",
    "InMemoryPhotoLibrary",
    "OperationBackend",
    "AgentStateRegistry",
    "get_registry",
    "PhotoDiscoveryService",
]
