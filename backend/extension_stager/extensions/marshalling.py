from __future__ import annotations
import dataclasses
import logging
from typing import Any, BinaryIO, Callable, Dict

import yaml
from pydantic import BaseModel

from .entities import EntityType, entity_type_name

_log = logging.getLogger(__name__)

Marshaller = Callable[[Any, BinaryIO], None]


def _entity_payload(entity: Any) -> Any:
    if isinstance(entity, BaseModel):
        return entity.model_dump(mode='json')
    if dataclasses.is_dataclass(entity) and not isinstance(entity, type):
        return dataclasses.asdict(entity)
    to_dict = getattr(entity, 'to_dict', None)
    if callable(to_dict):
        return to_dict()
    raise TypeError(f"don't know how to serialize {type(entity).__name__}")


def yaml_marshaller(entity: Any, out: BinaryIO) -> None:
    payload = _entity_payload(entity)
    text = yaml.safe_dump(payload, sort_keys=False, default_flow_style=False)
    out.write(text.encode('utf-8'))


class EntityMarshallers:
    """Per entity type serializers; unregistered types use the default."""

    def __init__(self, default: Marshaller | None = yaml_marshaller):
        self._by_type: Dict[str, Marshaller] = {}
        self._default = default

    def register(self, entity_type: EntityType | str, marshaller: Marshaller) -> None:
        key = str(getattr(entity_type, 'value', entity_type)).upper()
        if key in self._by_type:
            _log.debug("replacing marshaller for entity type %s", key)
        self._by_type[key] = marshaller

    def unregister(self, entity_type: EntityType | str) -> None:
        self._by_type.pop(str(getattr(entity_type, 'value', entity_type)).upper(), None)

    def get(self, entity_type: EntityType | str) -> Marshaller | None:
        key = str(getattr(entity_type, 'value', entity_type)).upper()
        return self._by_type.get(key, self._default)

    def marshal(self, entity: Any, out: BinaryIO) -> None:
        type_name = entity_type_name(entity)
        marshaller = self.get(type_name)
        if marshaller is None:
            raise LookupError(f"no marshaller registered for entity type {type_name}")
        marshaller(entity, out)


marshallers = EntityMarshallers()
