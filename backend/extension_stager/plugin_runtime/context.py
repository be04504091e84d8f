"""Isolated loading contexts for staged extension packages.

A context owns a synthetic package ``extension_stager.contexts.<id>`` whose
``__path__`` is the ordered list of staged directories and archives, so the
regular import machinery resolves extension modules against exactly those
entries (earlier entries shadow later ones) without touching ``sys.path``.

Modules loaded by a context run with their own ``__import__``: an absolute
import whose top-level package is present in the context resolves to the
context's copy, anything else falls through to the host interpreter. This
keeps absolute self-imports working and lets a staged package shadow a host
library of the same name. Nothing is process-global beyond one meta path
finder (inert for every other module name) and the uniquely named modules a
context loads; ``close()`` removes them again.
"""

from __future__ import annotations
import builtins
import importlib
import importlib.abc
import importlib.machinery
import importlib.metadata
import logging
import sys
import types
import uuid
import zipfile
import zipimport
from pathlib import Path
from typing import Any, Dict, Iterable, Iterator, List, Optional, Sequence, Tuple

from extension_stager.staging.artifacts import ArtifactReference

_log = logging.getLogger(__name__)

CONTEXT_NAMESPACE = 'extension_stager.contexts'


_host_import = builtins.__import__

# loaders whose exec_module runs module code through exec() on module.__dict__
_SOURCE_LOADERS = (
    importlib.machinery.SourceFileLoader,
    importlib.machinery.SourcelessFileLoader,
    zipimport.zipimporter,
)


class _ContextLoader(importlib.abc.Loader):
    """Delegating loader that runs a module with its context's builtins."""

    def __init__(self, loader: Any, context_builtins: Dict[str, Any]):
        self._loader = loader
        self._builtins = context_builtins

    def create_module(self, spec):
        return self._loader.create_module(spec)

    def exec_module(self, module: types.ModuleType) -> None:
        module.__dict__['__builtins__'] = self._builtins
        self._loader.exec_module(module)

    def __getattr__(self, name: str) -> Any:
        return getattr(self._loader, name)


class _ContextFinder(importlib.abc.MetaPathFinder):
    """Finds modules below an open context package and wraps their loader."""

    def find_spec(self, fullname, path, target=None):
        prefix = CONTEXT_NAMESPACE + '.'
        if path is None or not fullname.startswith(prefix):
            return None
        parts = fullname[len(prefix):].split('.')
        if len(parts) < 2:
            return None
        owner = sys.modules.get(prefix + parts[0])
        context = getattr(owner, '__loading_context__', None)
        if context is None:
            return None
        spec = importlib.machinery.PathFinder.find_spec(fullname, path)
        if spec is not None and isinstance(spec.loader, _SOURCE_LOADERS):
            spec.loader = _ContextLoader(spec.loader, context.builtins)
        return spec


def _namespace_root() -> types.ModuleType:
    mod = sys.modules.get(CONTEXT_NAMESPACE)
    if mod is None:
        parent_pkg = importlib.import_module('extension_stager')
        mod = types.ModuleType(CONTEXT_NAMESPACE)
        mod.__path__ = []  # children are installed explicitly, never searched for
        sys.modules[CONTEXT_NAMESPACE] = mod
        setattr(parent_pkg, 'contexts', mod)
    if not any(isinstance(finder, _ContextFinder) for finder in sys.meta_path):
        sys.meta_path.insert(0, _ContextFinder())
    return mod


def _split_reference(reference: str) -> Tuple[str, List[str]]:
    if ':' in reference:
        module_name, _, attr_path = reference.partition(':')
    else:
        module_name, _, attr_path = reference.rpartition('.')
    module_name = module_name.strip()
    attrs = [a for a in attr_path.strip().split('.') if a]
    if not module_name or not attrs:
        raise ValueError(f'invalid object reference {reference!r}; expected module:attribute')
    return module_name, attrs


class LoadingContext:
    def __init__(self, artifacts: Iterable[ArtifactReference], *, label: Optional[str] = None):
        self.artifacts: List[ArtifactReference] = list(artifacts)
        self.name = f"ctx_{uuid.uuid4().hex[:12]}"
        self.namespace = f"{CONTEXT_NAMESPACE}.{self.name}"
        self.label = label or self.name
        self.search_path: List[str] = []
        roots = [ref for ref in self.artifacts if ref.is_loadable_root]
        directories = [ref.path for ref in roots if ref.is_directory]
        for ref in roots:
            # a directory inside another entry is reached as a package of that entry
            if ref.is_directory and any(other in ref.path.parents for other in directories):
                continue
            entry = str(ref.path)
            if entry not in self.search_path:
                self.search_path.append(entry)
        self._package: Optional[types.ModuleType] = None
        self._closed = False
        self._provided: Dict[str, bool] = {}
        self.builtins: Dict[str, Any] = dict(builtins.__dict__)
        self.builtins['__import__'] = self._import

    def __repr__(self) -> str:
        return f"LoadingContext(label={self.label!r}, namespace={self.namespace!r}, entries={len(self.search_path)})"

    # lifecycle -----------------------------------------------------------

    @property
    def is_open(self) -> bool:
        return self._package is not None and not self._closed

    def open(self) -> 'LoadingContext':
        if self._closed:
            raise RuntimeError(f'{self!r} is closed')
        if self._package is not None:
            return self
        root = _namespace_root()
        pkg = types.ModuleType(self.namespace)
        spec = importlib.machinery.ModuleSpec(self.namespace, None, is_package=True)
        spec.submodule_search_locations = list(self.search_path)
        pkg.__spec__ = spec
        pkg.__path__ = spec.submodule_search_locations
        pkg.__package__ = self.namespace
        pkg.__loading_context__ = self
        sys.modules[self.namespace] = pkg
        setattr(root, self.name, pkg)
        self._package = pkg
        _log.debug("opened loading context %s over %d entries", self.namespace, len(self.search_path))
        return self

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        prefix = self.namespace
        keys = [k for k in list(sys.modules.keys()) if k == prefix or k.startswith(prefix + '.')]
        for k in keys:
            sys.modules.pop(k, None)
        root = sys.modules.get(CONTEXT_NAMESPACE)
        if root is not None and hasattr(root, self.name):
            delattr(root, self.name)
        for entry in self.search_path:
            sys.path_importer_cache.pop(entry, None)
        importlib.invalidate_caches()
        self._package = None
        _log.debug("closed loading context %s (unloaded %d modules)", prefix, len(keys))

    def __enter__(self) -> 'LoadingContext':
        return self.open()

    def __exit__(self, *exc_info: Any) -> None:
        self.close()

    # code ----------------------------------------------------------------

    def _require_open(self) -> None:
        if not self.is_open:
            raise RuntimeError(f'{self!r} is not open')

    def qualified_name(self, module_name: str) -> str:
        return f"{self.namespace}.{module_name}"

    def owns(self, obj: Any) -> bool:
        """True when ``obj`` (module, class or function) was loaded by this context."""
        module_name = obj.__name__ if isinstance(obj, types.ModuleType) else getattr(obj, '__module__', None)
        return bool(module_name) and (module_name == self.namespace or module_name.startswith(self.namespace + '.'))

    def provides(self, top_level: str) -> bool:
        """True when a context entry holds the top-level module or package ``top_level``."""
        found = self._provided.get(top_level)
        if found is None:
            found = importlib.machinery.PathFinder.find_spec(top_level, list(self.search_path)) is not None
            self._provided[top_level] = found
        return found

    def _import(self, name, globals=None, locals=None, fromlist=(), level=0):
        # __import__ seen by context modules: absolute names the context holds
        # are rewritten into its namespace, the rest go to the host
        if level == 0 and name and self.is_open and self.provides(name.partition('.')[0]):
            qualified = self.qualified_name(name)
            if fromlist:
                return _host_import(qualified, globals, locals, fromlist, 0)
            importlib.import_module(qualified)
            return sys.modules[self.qualified_name(name.partition('.')[0])]
        return _host_import(name, globals, locals, fromlist, level)

    def import_module(self, module_name: str, *, fallback: bool = True) -> types.ModuleType:
        """Import ``module_name`` from the context, else from the host when allowed.

        The host is consulted only when the top-level package is absent from
        the context; failures inside context modules propagate unchanged.
        """
        self._require_open()
        qualified = self.qualified_name(module_name)
        try:
            return importlib.import_module(qualified)
        except ModuleNotFoundError as exc:
            top = self.qualified_name(module_name.split('.')[0])
            if not fallback or exc.name != top:
                raise
        _log.debug("module %s not in %s; falling back to host", module_name, self.namespace)
        return importlib.import_module(module_name)

    def load_symbol(self, reference: str, *, fallback: bool = True) -> Any:
        """Resolve ``module:attr`` (or dotted ``module.attr``) through the context."""
        module_name, attrs = _split_reference(reference)
        obj: Any = self.import_module(module_name, fallback=fallback)
        for attr in attrs:
            obj = getattr(obj, attr)
        return obj

    def distributions(self) -> List[importlib.metadata.Distribution]:
        return list(importlib.metadata.distributions(path=list(self.search_path)))

    # resources -----------------------------------------------------------

    def iter_resources(self, name: str) -> Iterator[Tuple[str, bytes]]:
        """Yield ``(location, data)`` for every entry holding resource ``name``, in order."""
        rel = name.lstrip('/')
        if not rel:
            return
        for ref in self.artifacts:
            if ref.is_directory:
                candidate = (ref.path / rel)
                try:
                    candidate.resolve().relative_to(ref.path.resolve())
                except ValueError:
                    continue
                if candidate.is_file():
                    yield candidate.as_uri(), candidate.read_bytes()
            elif ref.is_archive:
                data = self._read_archive_member(ref.path, rel)
                if data is not None:
                    yield f"{ref.uri}!/{rel}", data

    @staticmethod
    def _read_archive_member(archive: Path, member: str) -> Optional[bytes]:
        try:
            with zipfile.ZipFile(archive) as zf:
                try:
                    return zf.read(member)
                except KeyError:
                    return None
        except (OSError, zipfile.BadZipFile) as exc:
            _log.warning("unable to read archive %s: %s", archive, exc)
            return None

    def find_resource(self, name: str) -> Optional[str]:
        for location, _ in self.iter_resources(name):
            return location
        return None

    def read_resource(self, name: str) -> bytes:
        for _, data in self.iter_resources(name):
            return data
        raise FileNotFoundError(f'resource {name!r} not found in {self.label}')


def create_context(artifacts: Sequence[ArtifactReference], *, label: Optional[str] = None) -> LoadingContext:
    """Build and open a loading context scoped to ``artifacts``."""
    return LoadingContext(artifacts, label=label).open()
