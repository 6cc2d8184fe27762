"""
Operation Catalogue
Defines every bulk operation, its limits, permissions and reversibility
"""
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional, Set

from photo_discovery.models.operations import OperationType


@dataclass
class OperationDefinition:
    """Definition of a bulk operation with its metadata and rules"""
    type: OperationType
    label: str
    description: str
    required_permission: str = "write"

    # Destructive operations always pass through confirmation
    destructive: bool = False
    requires_confirmation: bool = False

    # Selections larger than this need confirmation
    max_photos: int = 1000

    # Rollback possible only when apply() records inversion data
    reversible: bool = False

    supported_formats: List[str] = field(default_factory=list)
    default_parameters: Dict[str, object] = field(default_factory=dict)

    def needs_confirmation(self, photo_count: int) -> bool:
        return self.destructive or self.requires_confirmation or photo_count > self.max_photos


# =============================================================================
# OPERATION CATALOGUE
# =============================================================================

OPERATION_CATALOGUE: Dict[OperationType, OperationDefinition] = {
    OperationType.DOWNLOAD: OperationDefinition(
        type=OperationType.DOWNLOAD,
        label="Download",
        description="Download the selected photos",
        required_permission="read",
        max_photos=1000,
        supported_formats=["zip", "individual"],
        default_parameters={"format": "zip", "target": "selected"},
    ),
    OperationType.TAG: OperationDefinition(
        type=OperationType.TAG,
        label="Add or remove tags",
        description="Add keywords to, or remove keywords from, the selected photos",
        max_photos=1000,
        reversible=True,
        default_parameters={"action": "add"},
    ),
    OperationType.ALBUM_CREATE: OperationDefinition(
        type=OperationType.ALBUM_CREATE,
        label="Create album",
        description="Create a new album from the selected photos",
        max_photos=500,
        reversible=True,
        default_parameters={"add_photos": True},
    ),
    OperationType.ALBUM_ADD: OperationDefinition(
        type=OperationType.ALBUM_ADD,
        label="Add to album",
        description="Add the selected photos to an existing album",
        max_photos=500,
        reversible=True,
    ),
    OperationType.EXPORT_METADATA: OperationDefinition(
        type=OperationType.EXPORT_METADATA,
        label="Export metadata",
        description="Export metadata of the selected photos",
        required_permission="read",
        max_photos=1000,
        supported_formats=["json", "csv", "xml"],
        default_parameters={"format": "json"},
    ),
    OperationType.ANALYZE: OperationDefinition(
        type=OperationType.ANALYZE,
        label="Analyze with AI",
        description="Regenerate AI metadata for the selected photos",
        max_photos=100,
        reversible=True,
        default_parameters={"regenerate": True},
    ),
    OperationType.DELETE: OperationDefinition(
        type=OperationType.DELETE,
        label="Delete",
        description="Permanently delete the selected photos",
        required_permission="delete",
        destructive=True,
        requires_confirmation=True,
        max_photos=1000,
        reversible=False,
    ),
}


def get_operation(operation_type: OperationType) -> Optional[OperationDefinition]:
    return OPERATION_CATALOGUE.get(operation_type)


def available_operations(permissions: Optional[Iterable[str]] = None) -> List[OperationType]:
    """
    Operations the caller may run

    Args:
        permissions: Granted permissions; None means unrestricted

    Returns:
        Operation types in catalogue order
    """
    granted: Optional[Set[str]] = set(permissions) if permissions is not None else None
    return [
        definition.type
        for definition in OPERATION_CATALOGUE.values()
        if granted is None or definition.required_permission in granted
    ]
