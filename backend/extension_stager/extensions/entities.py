from __future__ import annotations
from enum import Enum
from typing import Any, Dict, Protocol, runtime_checkable

from pydantic import BaseModel, Field


class EntityType(str, Enum):
    CLUSTER = 'CLUSTER'
    FEED = 'FEED'
    PROCESS = 'PROCESS'
    DATASOURCE = 'DATASOURCE'


@runtime_checkable
class Entity(Protocol):
    """Anything an extension returns: only its type and name are read here."""

    entity_type: Any
    name: str


class EntityDefinition(BaseModel):
    """Generic entity an extension can return without shipping its own model."""

    entity_type: EntityType
    name: str
    definition: Dict[str, Any] = Field(default_factory=dict)
    tags: Dict[str, str] = Field(default_factory=dict)


def entity_type_name(entity: Any) -> str:
    raw = getattr(entity, 'entity_type')
    value = getattr(raw, 'value', raw)
    return str(value).upper()
