"""Public entry points: stage an extension package, load it in isolation, build its entities."""

from __future__ import annotations

import logging
from collections import abc
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, List, Optional, Sequence

from extension_stager.core.config import settings
from extension_stager.core.errors import EntityBuildError
from extension_stager.staging.artifacts import ArtifactReference
from extension_stager.staging.debug import DebugStagingReport, stage_entities
from extension_stager.staging.filesystems import RemoteFileSystem, default_filesystem
from extension_stager.staging.package import StagingResult, stage_extension_package
from extension_stager.plugin_runtime.context import create_context
from extension_stager.plugin_runtime.loader import ConfigInput, build_entities, resolve_builder

_log = logging.getLogger(__name__)


@dataclass
class ExtensionBuildResult:
    extension_name: str
    job_name: str
    staging: StagingResult
    entities: List[Any] = field(default_factory=list)
    debug_report: Optional[DebugStagingReport] = None

    @property
    def stage_path(self) -> Path:
        return self.staging.stage_path


def _materialize(entities: Any, extension_name: str, job_name: str) -> Any:
    """Turn a one-shot iterable into a list while its context is still open."""
    if entities is None or isinstance(entities, abc.Sequence) or not isinstance(entities, abc.Iterable):
        return entities
    try:
        return list(entities)
    except Exception as exc:  # noqa: BLE001
        raise EntityBuildError(
            f"Failed to build the entities of {extension_name} for job {job_name}: {exc}",
            extension_name=extension_name,
            job_name=job_name,
        ) from exc


def prepare(
    extension_name: str,
    job_name: str,
    config: ConfigInput,
    artifacts: Sequence[ArtifactReference],
) -> List[Any]:
    """Load already staged ``artifacts`` in a fresh context and build their entities.

    Lazily produced entities are collected before the context closes.
    """
    with create_context(artifacts, label=f'{extension_name}/{job_name}') as context:
        builder = resolve_builder(context, extension_name)
        entities = build_entities(builder, extension_name, job_name, config)
        return _materialize(entities, extension_name, job_name)


def _log_debug_report(report: DebugStagingReport) -> None:
    for failure in report.failures:
        _log.error(
            "Unable to serialize the entity object %s/%s: %s",
            failure.entity_type, failure.entity_name, failure.error,
        )
    if report.blocked_by is not None:
        _log.debug("Not able to stage the entities in %s", report.stage_path)
    elif report.staged:
        _log.debug("staged %d entity file(s) in %s", len(report.staged), report.stage_path)


def build_extension(
    extension_name: str,
    job_name: str,
    config: ConfigInput,
    extension_build_location: str,
    *,
    filesystem: Optional[RemoteFileSystem] = None,
    stage_dir: Optional[Path | str] = None,
    copy_timeout: Optional[float] = None,
    stage_debug_entities: Optional[bool] = None,
) -> ExtensionBuildResult:
    """Stage, resolve, build and (optionally) write debug copies of the entities."""
    fs = filesystem if filesystem is not None else default_filesystem()
    staging = stage_extension_package(
        extension_name,
        job_name,
        extension_build_location,
        fs,
        base_dir=stage_dir if stage_dir is not None else settings.stage_dir,
        copy_timeout=settings.copy_timeout if copy_timeout is None else copy_timeout,
    )
    _log.info(
        "staged extension %s for job %s at %s (%d artifacts)",
        extension_name, job_name, staging.stage_path, len(staging.artifacts),
    )
    entities = prepare(extension_name, job_name, config, staging.artifacts)
    result = ExtensionBuildResult(
        extension_name=extension_name,
        job_name=job_name,
        staging=staging,
        entities=entities,
    )
    if settings.debug_entities if stage_debug_entities is None else stage_debug_entities:
        result.debug_report = stage_entities(entities, staging.stage_path)
        _log_debug_report(result.debug_report)
    return result


def load_and_prepare(
    extension_name: str,
    job_name: str,
    config: ConfigInput,
    extension_build_location: str,
    **options: Any,
) -> List[Any]:
    return build_extension(extension_name, job_name, config, extension_build_location, **options).entities
