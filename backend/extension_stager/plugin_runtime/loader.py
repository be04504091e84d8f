"""Resolve the single builder of a staged extension and drive validate-then-build."""

from __future__ import annotations

import io
import logging
from typing import Any, BinaryIO, List, Optional, Union

from extension_stager.core.errors import (
    AmbiguousExtensionError,
    ConfigValidationError,
    EntityBuildError,
    ExtensionInstantiationError,
    ExtensionNotFoundError,
    ExtensionStagerError,
)
from extension_stager.extensions.builder import ExtensionBuilder, implements_builder
from extension_stager.plugin_runtime.context import LoadingContext
from extension_stager.plugin_runtime.discovery import BuilderCandidate, discover_builders

_log = logging.getLogger(__name__)

ConfigInput = Union[bytes, bytearray, str, BinaryIO, io.TextIOBase, None]


def resolve_candidate(context: LoadingContext, extension_name: str) -> BuilderCandidate:
    report = discover_builders(context)
    if not report.candidates:
        message = f"Extension implementation not found in the package of: {extension_name}"
        if report.diagnostics:
            message += ' [' + '; '.join(report.diagnostics) + ']'
        raise ExtensionNotFoundError(message, extension_name=extension_name)
    if len(report.candidates) > 1:
        raise AmbiguousExtensionError(
            f"Found more than one extension implementation in the package of: {extension_name} "
            f"({', '.join(report.references)})",
            extension_name=extension_name,
            candidates=report.references,
        )
    return report.candidates[0]


def instantiate_builder(context: LoadingContext, candidate: BuilderCandidate, extension_name: str) -> Any:
    """Load ``candidate`` from the context only and construct it without arguments."""
    try:
        cls = context.load_symbol(candidate.reference, fallback=False)
    except Exception as exc:  # noqa: BLE001
        raise ExtensionInstantiationError(
            f"Failed to load extension implementation {candidate.reference} for {extension_name}: {exc}",
            extension_name=extension_name,
        ) from exc
    if not isinstance(cls, type) or not context.owns(cls):
        raise ExtensionInstantiationError(
            f"{candidate.reference} is not a class defined by the package of {extension_name}",
            extension_name=extension_name,
        )
    try:
        builder = cls()
    except Exception as exc:  # noqa: BLE001
        raise ExtensionInstantiationError(
            f"Failed to instantiate extension implementation {extension_name}: {exc}",
            extension_name=extension_name,
        ) from exc
    if not implements_builder(builder):
        raise ExtensionInstantiationError(
            f"{candidate.reference} does not implement the extension builder capability",
            extension_name=extension_name,
        )
    if isinstance(builder, ExtensionBuilder):
        builder.context = context
    _log.info("resolved extension %s to %s (%s)", extension_name, candidate.reference, candidate.source)
    return builder


def resolve_builder(context: LoadingContext, extension_name: str) -> Any:
    candidate = resolve_candidate(context, extension_name)
    return instantiate_builder(context, candidate, extension_name)


def buffer_config(config: ConfigInput) -> bytes:
    """Read the configuration once so every builder call gets its own stream."""
    if config is None:
        return b''
    if isinstance(config, (bytes, bytearray)):
        return bytes(config)
    if isinstance(config, str):
        return config.encode('utf-8')
    data = config.read()
    if isinstance(data, str):
        return data.encode('utf-8')
    return bytes(data)


def build_entities(
    builder: Any,
    extension_name: str,
    job_name: str,
    config: ConfigInput,
) -> Optional[List[Any]]:
    payload = buffer_config(config)
    try:
        builder.validate_extension_config(extension_name, io.BytesIO(payload))
    except ConfigValidationError as exc:
        raise exc.with_context(extension_name=extension_name, job_name=job_name)
    except Exception as exc:  # noqa: BLE001
        raise ConfigValidationError(
            f"Configuration rejected by extension {extension_name}: {exc}",
            extension_name=extension_name,
            job_name=job_name,
        ) from exc
    try:
        return builder.get_entities(job_name, io.BytesIO(payload))
    except ExtensionStagerError as exc:
        raise exc.with_context(extension_name=extension_name, job_name=job_name)
    except Exception as exc:  # noqa: BLE001
        raise EntityBuildError(
            f"Extension {extension_name} failed to build entities: {exc}",
            extension_name=extension_name,
            job_name=job_name,
        ) from exc
