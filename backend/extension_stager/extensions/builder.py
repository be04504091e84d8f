"""Builder capability implemented by every extension package.

An extension ships a subclass of :class:`ExtensionBuilder` inside its
``libs/build`` output and names it in an ``extension.yml`` manifest (or an
``extension_stager.builders`` entry point). The class is imported from the
isolated loading context the package was staged into; its modules may import
each other by absolute or relative name, and packages the context does not
ship come from the host.
"""

from __future__ import annotations
import io
from abc import ABC, abstractmethod
from typing import Any, BinaryIO, List, Optional, Sequence, Tuple, TYPE_CHECKING

if TYPE_CHECKING:  # pragma: no cover
    from extension_stager.plugin_runtime.context import LoadingContext

# Output schemas are opaque to the host; extensions describe them however
# their consumers expect.
Schema = Any

REQUIRED_METHODS: Tuple[str, ...] = ('validate_extension_config', 'get_entities', 'get_output_schemas')


class ExtensionBuilder(ABC):
    # Assigned by the resolver after construction.
    context: Optional['LoadingContext'] = None

    @abstractmethod
    def validate_extension_config(self, extension_name: str, config_stream: BinaryIO) -> None:
        """Raise (ideally ConfigValidationError) when the configuration is unusable."""

    @abstractmethod
    def get_entities(self, job_name: str, config_stream: BinaryIO) -> List[Any]:
        ...

    @abstractmethod
    def get_output_schemas(self, extension_name: str) -> Sequence[Tuple[str, Schema]]:
        ...

    def read_resource(self, name: str) -> bytes:
        if self.context is None:
            raise RuntimeError(f"{type(self).__name__} is not bound to a loading context")
        return self.context.read_resource(name)

    def open_resource(self, name: str) -> BinaryIO:
        return io.BytesIO(self.read_resource(name))


def implements_builder(obj: Any) -> bool:
    if isinstance(obj, ExtensionBuilder):
        return True
    return all(callable(getattr(obj, attr, None)) for attr in REQUIRED_METHODS)
