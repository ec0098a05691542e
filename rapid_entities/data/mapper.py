"""Mapping between entities and physical rows."""

from typing import Any, Dict, Mapping, Optional

from ..errors import NotFoundError, ValidationError
from ..schema.models import ID_PROPERTY_CODE, Model, OwningOne
from ..schema.registry import ModelRegistry


def map_property_to_column(registry: ModelRegistry, model: Model, name: str) -> str:
    """Resolve a property code, or a physical column name, to a column of the model's table."""
    if name == ID_PROPERTY_CODE:
        return ID_PROPERTY_CODE

    prop = model.get_property(name)
    if prop is not None:
        if not prop.is_relation:
            return prop.column
        kind = prop.relation_kind
        if isinstance(kind, OwningOne):
            return kind.target_id_column_name
        raise ValidationError(
            f"Property '{name}' of model '{model.full_code}' is a many relation "
            "and can only be used with 'exists' or 'notExists' operators."
        )

    if name in registry.physical_columns(model):
        return name
    raise NotFoundError(f"Collection '{model.full_code}' does not have a property '{name}'.")


def map_entity_to_db_row(model: Model, entity: Mapping[str, Any]) -> Dict[str, Any]:
    """Map the scalar properties present in ``entity`` to their columns."""
    row: Dict[str, Any] = {}
    for prop in model.scalar_properties:
        if prop.code in entity:
            row[prop.column] = entity[prop.code]
    return row


def map_db_row_to_entity(
    registry: ModelRegistry,
    model: Model,
    row: Optional[Mapping[str, Any]],
    keep_non_property_fields: bool = False,
) -> Optional[Dict[str, Any]]:
    """Map a physical row to an entity.

    Scalar columns are renamed to their property codes. Columns holding ids of
    related rows keep their column name. Other columns are dropped unless
    ``keep_non_property_fields`` is set.
    """
    if row is None:
        return None

    codes_by_column = {prop.column: prop.code for prop in model.scalar_properties}
    fk_columns = registry.foreign_key_columns(model)

    entity: Dict[str, Any] = {}
    for column, value in row.items():
        if column == ID_PROPERTY_CODE:
            entity[ID_PROPERTY_CODE] = value
        elif column in codes_by_column:
            entity[codes_by_column[column]] = value
        elif column in fk_columns or keep_non_property_fields:
            entity[column] = value
    return entity
