"""
Read-only market index routes
"""

from dataclasses import asdict
from typing import Any

from fastapi import APIRouter, HTTPException, Request
from loguru import logger

from marketfeed.core.interfaces import IndexReadModel

router = APIRouter()


def _read_model(request: Request) -> IndexReadModel:
    read_model = getattr(request.app.state, "read_model", None)
    if read_model is None:
        raise HTTPException(status_code=503, detail="No index read model configured")
    return read_model


@router.get("/")
async def get_latest_index_data(request: Request) -> list[dict[str, Any]]:
    """Latest persisted rows for the default index key."""
    key = request.app.state.config.api.default_index_key
    return [asdict(record) for record in _read_model(request).latest_indices(key)]


@router.get("/{key}")
async def get_index_data_by_key(key: str, request: Request) -> list[dict[str, Any]]:
    """Latest persisted rows for ``key``; 404 when nothing has been stored."""
    records = _read_model(request).latest_indices(key)
    if not records:
        logger.info("No index data stored for key {!r}", key)
        raise HTTPException(status_code=404, detail=f"No index data for key {key!r}")
    return [asdict(record) for record in records]
