"""
Photo Discovery Configuration
"""
from pydantic_settings import BaseSettings
from typing import Dict, List, Optional


DEFAULT_FIELD_WEIGHTS: Dict[str, float] = {
    "keywords": 1.0,
    "objects": 0.9,
    "scenes": 0.9,
    "people": 0.8,
    "location": 0.7,
    "coordinates": 0.7,
    "date_range": 0.6,
    "camera": 0.4,
    "file_type": 0.3,
}


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Logging
    log_level: str = "INFO"
    log_dir: Optional[str] = None
    json_logs: bool = True

    # Parsing
    intent_confidence_threshold: float = 0.5
    command_confidence_threshold: float = 0.7
    max_query_length: int = 500

    # Search
    fuzzy_match_threshold: float = 0.6
    max_results: int = 50
    performance_budget_seconds: float = 3.0
    confidence_weight: float = 0.1
    field_weights: Dict[str, float] = dict(DEFAULT_FIELD_WEIGHTS)

    # Filter state
    debounce_ms: int = 300
    filter_state_path: Optional[str] = None
    filter_state_key: str = "photo-search-filters"

    # Bulk operations
    batch_size: int = 50
    max_selection_size: int = 10000
    retry_attempts: int = 0
    retry_backoff_seconds: float = 0.0
    default_permissions: List[str] = ["read", "write", "delete"]

    # Server
    host: str = "127.0.0.1"
    port: int = 8000

    class Config:
        env_prefix = "PHOTO_DISCOVERY_"
        env_file = ".env"
        case_sensitive = False
        extra = "ignore"


# Global settings instance
settings = Settings()
