"""Enumerate staged build outputs into ordered, loadable artifact references."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import List, Set

_log = logging.getLogger(__name__)

# Archives the import system can load from directly (zipimport).
ARCHIVE_SUFFIXES = ('.zip', '.whl', '.egg', '.pyz', '.jar')


@dataclass(frozen=True)
class ArtifactReference:
    path: Path
    is_directory: bool = False

    def __post_init__(self) -> None:
        object.__setattr__(self, 'path', Path(self.path).absolute())

    @classmethod
    def directory(cls, path: Path | str) -> 'ArtifactReference':
        return cls(Path(path), is_directory=True)

    @property
    def is_archive(self) -> bool:
        return not self.is_directory and self.path.suffix.lower() in ARCHIVE_SUFFIXES

    @property
    def is_loadable_root(self) -> bool:
        """True for entries that can sit on an import search path."""
        return self.is_directory or self.is_archive

    @property
    def uri(self) -> str:
        uri = self.path.as_uri()
        if self.is_directory and not uri.endswith('/'):
            uri += '/'
        return uri

    def __str__(self) -> str:
        return self.uri


def enumerate_artifacts(root: Path | str) -> List[ArtifactReference]:
    """Return references for everything under ``root``.

    A file yields itself. A directory yields, depth first, the files of each
    subdirectory followed by that subdirectory, then its own files and
    finally itself as a resource root. Unreadable directories contribute only
    their own reference.
    """
    root_path = Path(root).absolute()
    if not root_path.is_dir():
        return [ArtifactReference(root_path)]
    refs: List[ArtifactReference] = []
    _walk(root_path, refs, set())
    return refs


def _walk(directory: Path, refs: List[ArtifactReference], seen: Set[Path]) -> None:
    seen.add(directory.resolve())
    try:
        children = sorted(directory.iterdir(), key=lambda p: p.name)
    except OSError as exc:
        _log.warning("unable to list artifact directory %s: %s", directory, exc)
        children = []
    for child in children:
        if child.is_dir():
            # symlinked directories pointing back into the tree are listed once
            if child.resolve() in seen:
                continue
            _walk(child, refs, seen)
        else:
            refs.append(ArtifactReference(child))
    refs.append(ArtifactReference.directory(directory))
