"""Write produced entities into the stage directory for inspection.

Purely diagnostic: the outcome is returned as a report for the caller to log,
and nothing here raises.
"""

from __future__ import annotations
import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, List, Optional
from urllib.parse import quote_plus

from extension_stager.extensions.entities import entity_type_name
from extension_stager.extensions.marshalling import EntityMarshallers, marshallers as default_marshallers

_log = logging.getLogger(__name__)


@dataclass
class DebugStagingFailure:
    entity_type: str
    entity_name: str
    error: str


@dataclass
class DebugStagingReport:
    stage_path: Path
    staged: List[Path] = field(default_factory=list)
    failures: List[DebugStagingFailure] = field(default_factory=list)
    # set when an existing file stopped staging
    blocked_by: Optional[Path] = None

    @property
    def ok(self) -> bool:
        return not self.failures and self.blocked_by is None


def staged_entity_filename(entity: Any) -> str:
    return f"{entity_type_name(entity)}_{quote_plus(str(entity.name))}"


def stage_entities(
    entities: Optional[Iterable[Any]],
    stage_path: Path | str,
    *,
    registry: Optional[EntityMarshallers] = None,
) -> DebugStagingReport:
    registry = registry or default_marshallers
    stage_path = Path(stage_path)
    report = DebugStagingReport(stage_path=stage_path)
    try:
        iterator = iter(entities if entities is not None else ())
    except TypeError as exc:
        report.failures.append(DebugStagingFailure(entity_type='?', entity_name='?', error=repr(exc)))
        return report
    while True:
        try:
            entity = next(iterator)
        except StopIteration:
            break
        except Exception as exc:  # noqa: BLE001
            report.failures.append(DebugStagingFailure(entity_type='?', entity_name='?', error=repr(exc)))
            break
        type_name: Any = '?'
        name: Any = '?'
        target: Optional[Path] = None
        try:
            type_name = getattr(entity, 'entity_type', '?')
            name = getattr(entity, 'name', '?')
            type_name = entity_type_name(entity)
            target = stage_path / staged_entity_filename(entity)
            try:
                out = open(target, 'xb')
            except FileExistsError:
                _log.debug("not able to stage entities in %s: %s already exists", stage_path, target.name)
                report.blocked_by = target
                return report
            with out:
                registry.marshal(entity, out)
            report.staged.append(target)
            _log.debug("staged entity %s/%s", type_name, name)
        except Exception as exc:  # noqa: BLE001
            report.failures.append(DebugStagingFailure(entity_type=str(type_name), entity_name=str(name), error=repr(exc)))
            if target is not None and target not in report.staged:
                # drop the partial file so a rerun is not blocked by it
                try:
                    target.unlink(missing_ok=True)
                except OSError:
                    _log.debug("could not remove partial entity file %s", target)
    return report
