from __future__ import annotations

import asyncio
import logging
from typing import Dict, List, Optional, Type

from fastapi import APIRouter, HTTPException, Query, Request
from pydantic import BaseModel

from extension_stager.core.errors import (
    AmbiguousExtensionError,
    ConfigValidationError,
    EntityBuildError,
    ExtensionInstantiationError,
    ExtensionNotFoundError,
    ExtensionStagerError,
    StagingError,
)
from extension_stager.extensions.entities import entity_type_name
from extension_stager.plugin_runtime.handler import build_extension

router = APIRouter(prefix='/extensions', tags=['extensions'])
_log = logging.getLogger(__name__)

_STATUS_BY_ERROR: Dict[Type[ExtensionStagerError], int] = {
    StagingError: 502,
    ExtensionNotFoundError: 404,
    AmbiguousExtensionError: 409,
    ConfigValidationError: 422,
    ExtensionInstantiationError: 500,
    EntityBuildError: 500,
}


class EntitySummary(BaseModel):
    entity_type: str
    name: str


class DebugStagingSummary(BaseModel):
    staged: int = 0
    failures: int = 0
    blocked: bool = False


class ExtensionBuildResponse(BaseModel):
    extension: str
    job: str
    stage_path: str
    artifacts: List[str]
    entities: List[EntitySummary]
    debug_staging: Optional[DebugStagingSummary] = None


def _status_for(exc: ExtensionStagerError) -> int:
    for cls in type(exc).__mro__:
        status = _STATUS_BY_ERROR.get(cls)
        if status is not None:
            return status
    return 500


@router.post('/{extension_name}/jobs/{job_name}/entities', response_model=ExtensionBuildResponse)
async def prepare_extension_entities(
    extension_name: str,
    job_name: str,
    request: Request,
    build_location: str = Query(..., description='Remote location holding libs/build and resources/build'),
):
    """Stage the extension at ``build_location`` and build its entities from the request body."""
    config = await request.body()
    try:
        result = await asyncio.to_thread(build_extension, extension_name, job_name, config, build_location)
    except ExtensionStagerError as exc:
        _log.warning("extension build failed: %s", exc)
        raise HTTPException(status_code=_status_for(exc), detail={'error': type(exc).__name__, 'message': str(exc)})
    debug = None
    if result.debug_report is not None:
        debug = DebugStagingSummary(
            staged=len(result.debug_report.staged),
            failures=len(result.debug_report.failures),
            blocked=result.debug_report.blocked_by is not None,
        )
    return ExtensionBuildResponse(
        extension=extension_name,
        job=job_name,
        stage_path=str(result.stage_path),
        artifacts=[ref.uri for ref in result.staging.artifacts],
        entities=[EntitySummary(entity_type=entity_type_name(e), name=str(e.name)) for e in result.entities or []],
        debug_staging=debug,
    )
