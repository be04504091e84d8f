import sys
import shutil
import pathlib
import textwrap
from typing import Dict

import pytest

# Ensure backend root (containing the 'extension_stager' package) is on sys.path
BACKEND_ROOT = pathlib.Path(__file__).resolve().parents[1]
if str(BACKEND_ROOT) not in sys.path:
    sys.path.insert(0, str(BACKEND_ROOT))

from extension_stager.plugin_runtime.context import LoadingContext, create_context
from extension_stager.staging.artifacts import ArtifactReference

SAMPLE_BUILD_LOCATION = pathlib.Path(__file__).parent / 'test_extensions' / 'sample_ext'

SAMPLE_CONFIG = b"process_name: nightly-clicks\nfrequency: days(1)\n"


def write_tree(root: pathlib.Path, files: Dict[str, str]) -> pathlib.Path:
    """Write ``{relative_path: source}`` under ``root``; sources are dedented."""
    root.mkdir(parents=True, exist_ok=True)
    for rel, content in files.items():
        target = root / rel
        target.parent.mkdir(parents=True, exist_ok=True)
        target.write_text(textwrap.dedent(content))
    return root


BUILDER_SOURCE = """
    from extension_stager.extensions.builder import ExtensionBuilder
    from extension_stager.extensions.entities import EntityDefinition, EntityType


    class {name}(ExtensionBuilder):
        def validate_extension_config(self, extension_name, config_stream):
            pass

        def get_entities(self, job_name, config_stream):
            return [EntityDefinition(entity_type=EntityType.PROCESS, name=job_name)]

        def get_output_schemas(self, extension_name):
            return []
"""


def builder_source(name: str = 'Builder') -> str:
    return BUILDER_SOURCE.replace('{name}', name)


@pytest.fixture
def sample_build_location(tmp_path) -> pathlib.Path:
    """A copy of the sample extension's build outputs acting as the remote store."""
    target = tmp_path / 'remote' / 'sample-ext'
    shutil.copytree(SAMPLE_BUILD_LOCATION, target)
    return target


@pytest.fixture
def stage_dir(tmp_path) -> pathlib.Path:
    path = tmp_path / 'stage'
    path.mkdir()
    return path


@pytest.fixture
def make_build_location(tmp_path):
    """Factory producing a build location from ``libs``/``resources`` file maps."""
    counter = {'n': 0}

    def _make(libs: Dict[str, str] | None = None, resources: Dict[str, str] | None = None) -> pathlib.Path:
        counter['n'] += 1
        root = tmp_path / 'remote' / f"build{counter['n']}"
        root.mkdir(parents=True)
        if libs is not None:
            write_tree(root / 'libs' / 'build', libs)
        if resources is not None:
            write_tree(root / 'resources' / 'build', resources)
        return root
    return _make


@pytest.fixture
def make_context(tmp_path):
    """Factory opening a LoadingContext over freshly written directories.

    Each positional argument is a file map that becomes one directory entry,
    in order. Contexts are closed at teardown.
    """
    opened: list[LoadingContext] = []
    counter = {'n': 0}

    def _make(*entries: Dict[str, str]) -> LoadingContext:
        refs = []
        for files in entries:
            counter['n'] += 1
            entry = write_tree(tmp_path / f"entry{counter['n']}", files)
            refs.append(ArtifactReference.directory(entry))
        ctx = create_context(refs)
        opened.append(ctx)
        return ctx

    yield _make
    for ctx in opened:
        ctx.close()
