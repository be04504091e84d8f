"""Error types raised while staging, resolving and running extensions."""

from __future__ import annotations

from typing import Sequence


class ExtensionStagerError(Exception):
    """Base error; carries whatever invocation context was known when raised."""

    def __init__(
        self,
        message: str,
        *,
        extension_name: str | None = None,
        job_name: str | None = None,
        path: str | None = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        self.extension_name = extension_name
        self.job_name = job_name
        self.path = path

    def with_context(self, *, extension_name: str | None = None, job_name: str | None = None) -> 'ExtensionStagerError':
        if self.extension_name is None:
            self.extension_name = extension_name
        if self.job_name is None:
            self.job_name = job_name
        return self

    def __str__(self) -> str:
        details = []
        if self.extension_name:
            details.append(f"extension={self.extension_name}")
        if self.job_name:
            details.append(f"job={self.job_name}")
        if self.path:
            details.append(f"path={self.path}")
        if not details:
            return self.message
        return f"{self.message} ({', '.join(details)})"


class StagingError(ExtensionStagerError):
    """Raised when the stage directory cannot be created or a remote copy fails."""

    def __init__(self, message: str, *, subtree: str | None = None, **context) -> None:
        super().__init__(message, **context)
        self.subtree = subtree


class ExtensionNotFoundError(ExtensionStagerError):
    """Raised when no builder implementation is registered in the staged package."""


class AmbiguousExtensionError(ExtensionStagerError):
    """Raised when the staged package registers more than one builder implementation."""

    def __init__(self, message: str, *, candidates: Sequence[str] = (), **context) -> None:
        super().__init__(message, **context)
        self.candidates = list(candidates)


class ExtensionInstantiationError(ExtensionStagerError):
    """Raised when the discovered builder cannot be loaded or constructed."""


class ConfigValidationError(ExtensionStagerError):
    """Raised when an extension rejects the supplied configuration.

    Extensions may raise this directly from ``validate_extension_config``;
    any other exception raised there is wrapped into it.
    """


class EntityBuildError(ExtensionStagerError):
    """Raised when an extension fails while producing its entities."""
