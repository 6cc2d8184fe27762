"""
Agent API Router
Serves search, selection and bulk operations over HTTP
"""
from fastapi import APIRouter, Depends, HTTPException, Request, status
from fastapi.responses import JSONResponse
from typing import Any, Dict
import logging

from photo_discovery.errors import PhotoDiscoveryError
from photo_discovery.models.operations import BulkOperation, OperationResult
from photo_discovery.models.requests import (
    BulkOperationRequest,
    BulkSelectRequest,
    CommandRequest,
    SearchRequest,
)
from photo_discovery.models.responses import (
    BulkOperationResponse,
    BulkSelectResponse,
    ErrorResponse,
    SearchResponse,
)
from photo_discovery.services.discovery_service import PhotoDiscoveryService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1", tags=["photos"])


def get_service(request: Request) -> PhotoDiscoveryService:
    return request.app.state.service


async def photo_discovery_error_handler(request: Request, exc: PhotoDiscoveryError) -> JSONResponse:
    """Map package errors to {code, message, details} bodies"""
    if exc.status_code >= 500:
        logger.error(f"{request.method} {request.url.path} failed: {exc.code} {exc.message}")
    else:
        logger.info(f"{request.method} {request.url.path} rejected: {exc.code} {exc.message}")
    body = ErrorResponse(code=exc.code, message=exc.message, details=exc.details or None)
    return JSONResponse(status_code=exc.status_code, content=body.model_dump(exclude_none=True))


@router.post("/search", response_model=SearchResponse)
async def search(request: SearchRequest, service: PhotoDiscoveryService = Depends(get_service)):
    """
    Natural-language photo search

    The query is parsed into filters; explicit filters in the request are
    merged over the parsed ones before ranking.
    """
    logger.info(f"Search request: {request.query!r}")
    filters = request.filters.model_dump(exclude_unset=True) if request.filters is not None else None
    return service.search(
        request.query,
        filters=filters,
        options=request.options,
        combination_mode=request.combination_mode,
    )


@router.post("/select", response_model=BulkSelectResponse)
async def bulk_select(request: BulkSelectRequest, service: PhotoDiscoveryService = Depends(get_service)):
    return service.bulk_select(request.photo_ids, select_all=request.select_all)


@router.post("/commands/parse", response_model=BulkOperation)
async def parse_command(request: CommandRequest, service: PhotoDiscoveryService = Depends(get_service)):
    return service.parse_command(request.text, request.context)


@router.post("/operations", response_model=BulkOperationResponse)
async def execute_bulk_operation(
    request: BulkOperationRequest,
    service: PhotoDiscoveryService = Depends(get_service),
):
    """Run an operation (by type or as a command sentence) over the current selection"""
    logger.info(f"Bulk operation request: {request.operation!r} (confirmed={request.confirmed})")
    return await service.execute_bulk_operation(
        request.operation,
        parameters=request.parameters,
        confirmed=request.confirmed,
    )


@router.get("/operations/{operation_id}", response_model=OperationResult)
async def get_operation(operation_id: str, service: PhotoDiscoveryService = Depends(get_service)):
    result = service.get_operation(operation_id)
    if result is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=f"Operation {operation_id} not found")
    return result


@router.post("/operations/{operation_id}/rollback", response_model=BulkOperationResponse)
async def rollback(operation_id: str, service: PhotoDiscoveryService = Depends(get_service)):
    return await service.rollback(operation_id)


@router.get("/state")
async def agent_state(service: PhotoDiscoveryService = Depends(get_service)) -> Dict[str, Any]:
    return service.state()


@router.get("/health")
async def health_check(service: PhotoDiscoveryService = Depends(get_service)):
    return {
        "status": "ok",
        "service": "photo-discovery",
        "photo_count": service.state()["photo_count"],
    }
