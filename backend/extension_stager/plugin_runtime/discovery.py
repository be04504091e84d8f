"""Builder capability registry built from markers inside a staged package.

Two markers are recognised, both read through an explicit LoadingContext:

* ``extension.yml`` at the root of any context entry::

      name: sample-ext
      version: 1.0.0
      requires_host: ">=0.1.0"      # optional
      builder: sample_ext.builder:SampleBuilder   # or builders: [...]

* ``extension_stager.builders`` entry points of distributions (``*.dist-info``)
  visible in the context.

The same target declared more than once counts as one candidate.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import yaml
from packaging import version as _v

from extension_stager.core.config import settings
from extension_stager.plugin_runtime.context import LoadingContext

_log = logging.getLogger(__name__)

MANIFEST_FILENAME = 'extension.yml'
ENTRY_POINT_GROUP = 'extension_stager.builders'


@dataclass(frozen=True)
class BuilderCandidate:
    reference: str
    source: str
    name: Optional[str] = None


@dataclass
class DiscoveryReport:
    candidates: List[BuilderCandidate] = field(default_factory=list)
    diagnostics: List[str] = field(default_factory=list)

    @property
    def references(self) -> List[str]:
        return [c.reference for c in self.candidates]

    def add(self, candidate: BuilderCandidate) -> None:
        if candidate.reference in self.references:
            _log.debug("duplicate builder declaration %s in %s", candidate.reference, candidate.source)
            return
        self.candidates.append(candidate)


def host_version_ok(required: str, current: Optional[str] = None) -> bool:
    """Check ``required`` ('>=0.2, <1.0' style tokens) against the host version."""
    cur = _v.parse(current or settings.version)
    parts = [p.strip() for p in required.replace(',', ' ').split() if p.strip()]
    for p in parts:
        for op in ('>=', '<=', '==', '!=', '>', '<'):
            if p.startswith(op):
                target = _v.parse(p[len(op):])
                break
        else:
            op, target = '==', _v.parse(p)
        if op == '>=' and not cur >= target: return False
        if op == '<=' and not cur <= target: return False
        if op == '==' and not cur == target: return False
        if op == '!=' and not cur != target: return False
        if op == '>' and not cur > target: return False
        if op == '<' and not cur < target: return False
    return True


def _declared_builders(data: Dict[str, Any]) -> List[str]:
    raw: Any = data.get('builders')
    if raw is None:
        raw = data.get('builder')
    if raw is None:
        return []
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        raise ValueError('builder(s) must be a string or a list of strings')
    cleaned: List[str] = []
    for item in raw:
        text = str(item).strip() if item is not None else ''
        if text and text.lower() not in {'null', 'none'}:
            cleaned.append(text)
    return cleaned


def _register_manifest(report: DiscoveryReport, location: str, payload: bytes) -> None:
    try:
        data = yaml.safe_load(payload.decode('utf-8')) or {}
        if not isinstance(data, dict):
            raise ValueError('manifest must be a mapping')
        builders = _declared_builders(data)
    except (yaml.YAMLError, UnicodeDecodeError, ValueError) as exc:
        report.diagnostics.append(f'{location}: invalid manifest: {exc}')
        _log.warning("ignoring invalid extension manifest %s: %s", location, exc)
        return
    if not builders:
        report.diagnostics.append(f'{location}: manifest declares no builder')
        return
    required = data.get('requires_host')
    if required:
        try:
            compatible = host_version_ok(str(required))
        except _v.InvalidVersion as exc:
            report.diagnostics.append(f'{location}: invalid requires_host {required!r}: {exc}')
            return
        if not compatible:
            report.diagnostics.append(f'{location}: requires host {required}, running {settings.version}')
            _log.warning("extension manifest %s requires host %s (running %s)", location, required, settings.version)
            return
    name = data.get('name')
    for reference in builders:
        report.add(BuilderCandidate(reference=reference, source=location, name=str(name) if name else None))


def _register_entry_points(report: DiscoveryReport, dists: Iterable[Any]) -> None:
    for dist in dists:
        try:
            dist_name = dist.metadata.get('Name')
        except Exception:  # noqa: BLE001 - unreadable METADATA only loses the label
            dist_name = None
        for ep in dist.entry_points.select(group=ENTRY_POINT_GROUP):
            report.add(BuilderCandidate(reference=ep.value, source=f'entry point {ep.name} ({dist_name or "?"})', name=ep.name))


def discover_builders(context: LoadingContext) -> DiscoveryReport:
    report = DiscoveryReport()
    for location, payload in context.iter_resources(MANIFEST_FILENAME):
        _register_manifest(report, location, payload)
    _register_entry_points(report, context.distributions())
    _log.debug("discovered %d builder candidate(s) in %s", len(report.candidates), context.label)
    return report
