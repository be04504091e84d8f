import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI

from extension_stager.api import extensions as extensions_router
from extension_stager.api import version as version_router
from extension_stager.core.config import settings
from extension_stager.core.logging_config import configure_logging

_log = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings.log_level)
    _log.info("stage directory %s, remote filesystem %s", settings.stage_dir, settings.remote_fs)
    yield


app = FastAPI(title=settings.app_name, lifespan=lifespan)

app.include_router(extensions_router.router, prefix=settings.api_v1_prefix)
app.include_router(version_router.router, prefix=settings.api_v1_prefix)


@app.get('/')
async def root():
    return {'status': 'ok', 'app': settings.app_name}
