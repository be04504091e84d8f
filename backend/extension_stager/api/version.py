from typing import Any, Dict

from fastapi import APIRouter

from extension_stager.core.config import settings

router = APIRouter()


def get_version_payload() -> Dict[str, Any]:
    return {
        'version': settings.version,
        'remote_fs': settings.remote_fs,
        'debug_entities': settings.debug_entities,
    }


@router.get('/version')
async def version():
    return get_version_payload()
