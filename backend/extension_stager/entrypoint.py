from __future__ import annotations
import os
from extension_stager.core.config import settings
from extension_stager.core.logging_config import configure_logging


def main():
    configure_logging(settings.log_level)
    print(f"[entrypoint] starting version={settings.version} log_level={settings.log_level}", flush=True)
    print(f"[entrypoint] stage_dir={settings.stage_dir} remote_fs={settings.remote_fs} copy_timeout={settings.copy_timeout}", flush=True)
    import uvicorn
    from uvicorn.config import LOGGING_CONFIG
    host = os.getenv('EXTENSION_STAGER_HOST', '0.0.0.0')
    port = int(os.getenv('EXTENSION_STAGER_PORT', '4160'))
    print(f"[entrypoint] launching uvicorn on {host}:{port}", flush=True)
    try:
        uvicorn.run(
            'extension_stager.main:app',
            host=host,
            port=port,
            reload=False,
            log_level=settings.log_level.lower(),
            log_config=LOGGING_CONFIG,
        )
    finally:
        print("[entrypoint] uvicorn stopped", flush=True)


if __name__ == '__main__':  # pragma: no cover
    main()
