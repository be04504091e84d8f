"""Stage an extension's build outputs from its build location to local disk."""

from __future__ import annotations

import logging
import os
import time
import threading
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, List, Optional

from extension_stager.core.errors import StagingError
from extension_stager.staging.artifacts import ArtifactReference, enumerate_artifacts
from extension_stager.staging.filesystems import RemoteFileSystem, join_remote

_log = logging.getLogger(__name__)

LIBS = 'libs'
RESOURCES = 'resources'
BUILD = 'build'


@dataclass
class StagingResult:
    stage_path: Path
    artifacts: List[ArtifactReference] = field(default_factory=list)

    @property
    def libs_path(self) -> Path:
        return self.stage_path / LIBS

    @property
    def resources_path(self) -> Path:
        return self.stage_path / RESOURCES


def _check_segment(value: str, label: str) -> str:
    text = (value or '').strip()
    if not text or text in {'.', '..'} or '/' in text or '\\' in text:
        raise StagingError(f'invalid {label} for a stage path: {value!r}')
    return text


def stage_path_for(extension_name: str, job_name: str, base_dir: Path | str, *, now: Optional[float] = None) -> Path:
    ts = int(time.time() if now is None else now)
    return Path(base_dir) / _check_segment(extension_name, 'extension name') / _check_segment(job_name, 'job name') / str(ts)


def create_stage_path(extension_name: str, job_name: str, base_dir: Path | str, *, now: Optional[float] = None) -> Path:
    """Create the unique per-invocation stage directory.

    An existing directory is an error: two invocations computed the same
    path within the same second.
    """
    path = stage_path_for(extension_name, job_name, base_dir, now=now)
    context = dict(extension_name=extension_name, job_name=job_name, path=str(path))
    try:
        path.mkdir(parents=True, exist_ok=False)
    except FileExistsError as exc:
        raise StagingError('stage directory already exists', **context) from exc
    except OSError as exc:
        raise StagingError(f'failed to create stage directory: {exc}', **context) from exc
    if not os.access(path, os.W_OK | os.X_OK):
        raise StagingError('stage directory is not writable', **context)
    _log.debug("created stage directory %s", path)
    return path


def _run_with_timeout(fn: Callable[[], None], timeout: float, name: str) -> bool:
    """Run ``fn`` on a daemon thread; False when it is still running after ``timeout``.

    A copy that never returns keeps its thread, but never blocks interpreter exit.
    """
    outcome: dict = {}

    def _target() -> None:
        try:
            fn()
        except Exception as exc:  # noqa: BLE001 - re-raised on the calling thread
            outcome['error'] = exc

    worker = threading.Thread(target=_target, name=name, daemon=True)
    worker.start()
    worker.join(timeout)
    if worker.is_alive():
        return False
    if 'error' in outcome:
        raise outcome['error']
    return True


def _copy_subtree(
    filesystem: RemoteFileSystem,
    remote: str,
    local: Path,
    *,
    subtree: str,
    timeout: Optional[float],
    extension_name: Optional[str],
    job_name: Optional[str],
) -> None:
    context = dict(subtree=subtree, extension_name=extension_name, job_name=job_name, path=remote)
    _log.info("copying build time %s from %s to %s", subtree, remote, local)
    try:
        if timeout:
            finished = _run_with_timeout(lambda: filesystem.copy_to_local(remote, local), timeout, f'stage-{subtree}')
        else:
            filesystem.copy_to_local(remote, local)
            finished = True
    except Exception as exc:
        raise StagingError(f'failed to copy {subtree}: {exc}', **context) from exc
    if not finished:
        _log.warning("abandoning copy of %s from %s after %ss", subtree, remote, timeout)
        raise StagingError(f'timed out after {timeout}s copying {subtree}', **context)
    if not local.exists():
        raise StagingError(f'copy of {subtree} produced no local output at {local}', **context)


def copy_extension_package(
    extension_build_location: str,
    filesystem: RemoteFileSystem,
    stage_path: Path,
    *,
    extension_name: Optional[str] = None,
    job_name: Optional[str] = None,
    copy_timeout: Optional[float] = None,
) -> StagingResult:
    """Copy ``libs/build`` and ``resources/build`` into ``stage_path`` and enumerate them.

    Partial local state is left in place when a copy fails.
    """
    stage_path = Path(stage_path)
    result = StagingResult(stage_path=stage_path)
    for subtree, local in ((LIBS, result.libs_path), (RESOURCES, result.resources_path)):
        _copy_subtree(
            filesystem,
            join_remote(extension_build_location, subtree, BUILD),
            local,
            subtree=subtree,
            timeout=copy_timeout,
            extension_name=extension_name,
            job_name=job_name,
        )
    result.artifacts.extend(enumerate_artifacts(result.libs_path))
    result.artifacts.append(ArtifactReference.directory(result.resources_path))
    return result


def stage_extension_package(
    extension_name: str,
    job_name: str,
    extension_build_location: str,
    filesystem: RemoteFileSystem,
    *,
    base_dir: Path | str,
    copy_timeout: Optional[float] = None,
    clock: Callable[[], float] = time.time,
) -> StagingResult:
    stage_path = create_stage_path(extension_name, job_name, base_dir, now=clock())
    return copy_extension_package(
        extension_build_location,
        filesystem,
        stage_path,
        extension_name=extension_name,
        job_name=job_name,
        copy_timeout=copy_timeout,
    )
