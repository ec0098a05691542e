"""
Classification of entity input against a model.

Entity input is an untyped mapping. Before any cascading logic runs, each key
is resolved against the model into one of:

- ``ScalarValue``: value of a non-relation property.
- ``EntityReference``: id of an existing related entity (``None`` clears a one-relation).
- ``EmbeddedEntity``: a related entity to be created.
- ``EntityList``: the value of a many-relation, a list of references and embedded entities.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, Mapping, Tuple, Union

from ..errors import ValidationError
from ..schema.models import ID_PROPERTY_CODE, Model

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ScalarValue:
    value: Any


@dataclass(frozen=True)
class EntityReference:
    id: Any


@dataclass(frozen=True)
class EmbeddedEntity:
    values: Dict[str, Any]


RelatedEntity = Union[EntityReference, EmbeddedEntity]


@dataclass(frozen=True)
class EntityList:
    items: Tuple[RelatedEntity, ...]

    @property
    def reference_ids(self) -> Tuple[Any, ...]:
        return tuple(i.id for i in self.items if isinstance(i, EntityReference))

    @property
    def has_embedded(self) -> bool:
        return any(isinstance(i, EmbeddedEntity) for i in self.items)


FieldValue = Union[ScalarValue, EntityReference, EmbeddedEntity, EntityList]


def _related(value: Any) -> RelatedEntity:
    if isinstance(value, Mapping):
        related_id = value.get(ID_PROPERTY_CODE)
        if related_id is None:
            return EmbeddedEntity(values=value)
        return EntityReference(id=related_id)
    return EntityReference(id=value)


def classify_entity(model: Model, entity: Mapping[str, Any]) -> Dict[str, FieldValue]:
    """Resolve every known property of ``entity`` into a field value.

    Keys that are not properties of the model, and ``id``, are left out.
    """
    fields: Dict[str, FieldValue] = {}
    for code, value in entity.items():
        if code == ID_PROPERTY_CODE:
            continue
        prop = model.get_property(code)
        if prop is None:
            logger.debug("Ignoring unknown property '%s' of model '%s'", code, model.full_code)
            continue

        if not prop.is_relation:
            fields[code] = ScalarValue(value)
        elif not prop.relation_kind.is_many:
            fields[code] = EntityReference(id=None) if value is None else _related(value)
        else:
            if isinstance(value, (str, bytes, Mapping)) or not isinstance(value, (list, tuple)):
                raise ValidationError(f"Value of field '{code}' should be an array.")
            for item in value:
                if item is None:
                    raise ValidationError(f"Value of field '{code}' should not contain null items.")
            fields[code] = EntityList(items=tuple(_related(item) for item in value))
    return fields
