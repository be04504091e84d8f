from pathlib import Path
from pydantic import BaseModel
import os
import tempfile
from dotenv import load_dotenv
from extension_stager import __version__

# Optionally load a config.env file so local setups can keep settings out of
# shell profiles and process listings.
_cfg_override = os.getenv('EXTENSION_STAGER_CONFIG_FILE')
_candidates = []
if _cfg_override:
    _candidates.append(Path(_cfg_override))
_candidates.append(Path.cwd() / 'config.env')
_candidates.append(Path.cwd() / 'backend' / 'config.env')

for _p in _candidates:
    if _p.exists():
        load_dotenv(str(_p))
        break

"""Central configuration.

Env vars:
  EXTENSION_STAGER_STAGE_DIR       - base directory for per-invocation stage paths
  EXTENSION_STAGER_COPY_TIMEOUT    - seconds allowed per remote copy (0 disables)
  EXTENSION_STAGER_DEBUG_ENTITIES  - write produced entities into the stage path
  EXTENSION_STAGER_REMOTE_FS       - 'local' or 'github'
  EXTENSION_STAGER_REMOTE_URL      - repository base url used by the github handle
  EXTENSION_STAGER_LOG_LEVEL       - DEBUG, INFO, WARNING, ERROR, CRITICAL
  EXTENSION_STAGER_VERSION         - override reported host version
"""


def _env_flag(name: str, default: bool = False) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in {"1", "true", "yes", "on"}


def _env_float(name: str, default: float) -> float:
    value = os.getenv(name)
    if value is None or not value.strip():
        return default
    return float(value)


class Settings(BaseModel):
    app_name: str = 'Extension Stager'
    api_v1_prefix: str = '/api/v1'
    version: str = os.getenv('EXTENSION_STAGER_VERSION', __version__)
    stage_dir: Path = Path(os.getenv('EXTENSION_STAGER_STAGE_DIR') or tempfile.gettempdir())
    copy_timeout: float = _env_float('EXTENSION_STAGER_COPY_TIMEOUT', 300.0)
    debug_entities: bool = _env_flag('EXTENSION_STAGER_DEBUG_ENTITIES', True)
    remote_fs: str = os.getenv('EXTENSION_STAGER_REMOTE_FS', 'local')
    remote_url: str | None = os.getenv('EXTENSION_STAGER_REMOTE_URL') or None
    log_level: str = os.getenv('EXTENSION_STAGER_LOG_LEVEL', 'INFO')

settings = Settings()
