"""
Model registry.

Holds the models of an application and derives their physical layout: one
table per model plus one table per distinct link table. The registry is built
once per schema change and is read-only afterwards.
"""

import json
import logging
from pathlib import Path
from typing import Any, Dict, Iterable, List, Mapping, Optional, Set, Union

from sqlalchemy import (
    JSON,
    BigInteger,
    Boolean,
    Column,
    Date,
    DateTime,
    Float,
    Integer,
    MetaData,
    String,
    Table,
    Text,
    UniqueConstraint,
)

from ..errors import ConfigurationError, NotFoundError
from .models import ID_PROPERTY_CODE, ManyForeignKey, ManyLinkTable, Model, OwningOne

logger = logging.getLogger(__name__)

ModelRef = Union[str, Mapping[str, Any], Model]

COLUMN_TYPES = {
    "text": Text,
    "string": String(1000),
    "integer": Integer,
    "long": BigInteger,
    "float": Float,
    "double": Float,
    "boolean": Boolean,
    "date": Date,
    "datetime": DateTime(timezone=True),
    "json": JSON,
}


def _column_type(type_name: str):
    try:
        return COLUMN_TYPES[type_name]
    except KeyError:
        raise ConfigurationError(f"Unknown property type '{type_name}'.") from None


class ModelRegistry:
    """Registry of models and their physical tables."""

    def __init__(self, models: Iterable[Model]):
        self.metadata = MetaData()
        self._models: List[Model] = []
        self._by_code: Dict[str, List[Model]] = {}
        self._tables: Dict[str, Table] = {}
        self._fk_columns: Dict[str, Set[str]] = {}

        for model in models:
            self._register(model)
        self._build_tables()

    @classmethod
    def from_definitions(cls, definitions: Iterable[Mapping[str, Any]]) -> "ModelRegistry":
        return cls(Model.model_validate(d) for d in definitions)

    @classmethod
    def from_json_file(cls, path: Union[str, Path]) -> "ModelRegistry":
        """Load model definitions from a JSON file.

        The file holds either a list of models or an object with a ``models`` key.
        """
        data = json.loads(Path(path).read_text(encoding="utf-8"))
        if isinstance(data, dict):
            data = data.get("models", [])
        return cls.from_definitions(data)

    @property
    def models(self) -> List[Model]:
        return list(self._models)

    def _register(self, model: Model) -> None:
        for existing in self._by_code.get(model.singular_code, []):
            if existing.namespace == model.namespace:
                raise ConfigurationError(f"Model '{model.full_code}' is registered twice.")
        self._models.append(model)
        self._by_code.setdefault(model.singular_code, []).append(model)

    def get_model(self, ref: ModelRef) -> Optional[Model]:
        """Find a model by singular code, ``{namespace, singularCode}`` mapping or model."""
        if isinstance(ref, Model):
            namespace, singular_code = ref.namespace, ref.singular_code
        elif isinstance(ref, str):
            namespace, singular_code = None, ref
        else:
            namespace = ref.get("namespace")
            singular_code = ref.get("singularCode") or ref.get("singular_code")

        candidates = self._by_code.get(singular_code, [])
        if namespace is not None:
            candidates = [m for m in candidates if m.namespace == namespace]
        if len(candidates) > 1:
            raise ConfigurationError(
                f"Model reference '{singular_code}' is ambiguous, a namespace is required."
            )
        return candidates[0] if candidates else None

    def require_model(self, ref: ModelRef) -> Model:
        model = self.get_model(ref)
        if model is None:
            raise NotFoundError(f"Model '{ref}' was not found.")
        return model

    def get_model_by_plural_code(self, namespace: str, plural_code: str) -> Optional[Model]:
        for model in self._models:
            if model.namespace == namespace and model.plural_code == plural_code:
                return model
        return None

    # Physical layout

    def table_for(self, model: Model) -> Table:
        return self._tables[model.full_code]

    def link_table_for(self, relation: ManyLinkTable) -> Table:
        key = relation.link_table_name
        if relation.link_schema:
            key = f"{relation.link_schema}.{relation.link_table_name}"
        return self.metadata.tables[key]

    def foreign_key_columns(self, model: Model) -> Set[str]:
        """Columns of the model's table that hold ids of related rows."""
        return set(self._fk_columns.get(model.full_code, set()))

    def physical_columns(self, model: Model) -> Set[str]:
        return {c.name for c in self.table_for(model).columns}

    def _target_of(self, model: Model, target_singular_code: str, property_code: str) -> Model:
        target = self.get_model({"namespace": model.namespace, "singularCode": target_singular_code})
        if target is None:
            target = self.get_model(target_singular_code)
        if target is None:
            raise ConfigurationError(
                f"Target model '{target_singular_code}' of property '{property_code}' "
                f"in model '{model.full_code}' is not registered."
            )
        return target

    def _build_tables(self) -> None:
        columns: Dict[str, Dict[str, Any]] = {m.full_code: {} for m in self._models}
        fk_columns: Dict[str, Set[str]] = {m.full_code: set() for m in self._models}

        for model in self._models:
            own = columns[model.full_code]
            for prop in model.scalar_properties:
                own[prop.column] = _column_type(prop.type)

            for prop in model.relation_properties:
                kind = prop.relation_kind
                target = self._target_of(model, kind.target_singular_code, prop.code)
                if isinstance(kind, OwningOne):
                    own.setdefault(kind.target_id_column_name, Integer)
                    fk_columns[model.full_code].add(kind.target_id_column_name)
                elif isinstance(kind, ManyForeignKey):
                    columns[target.full_code].setdefault(kind.self_id_column_name, Integer)
                    fk_columns[target.full_code].add(kind.self_id_column_name)
                else:
                    self._build_link_table(kind)

        table_names: Dict[str, str] = {}
        for model in self._models:
            key = model.physical_table_name
            if model.db_schema:
                key = f"{model.db_schema}.{key}"
            if key in table_names or key in self.metadata.tables:
                raise ConfigurationError(
                    f"Table '{key}' of model '{model.full_code}' is already used."
                )
            table_names[key] = model.full_code

            table_columns = [Column(ID_PROPERTY_CODE, Integer, primary_key=True, autoincrement=True)]
            for name, column_type in columns[model.full_code].items():
                if name == ID_PROPERTY_CODE:
                    continue
                table_columns.append(Column(name, column_type, nullable=True))
            self._tables[model.full_code] = Table(
                model.physical_table_name,
                self.metadata,
                *table_columns,
                schema=model.db_schema,
            )
        self._fk_columns = fk_columns
        logger.debug("Built physical layout for %d models", len(self._models))

    def _build_link_table(self, relation: ManyLinkTable) -> None:
        key = relation.link_table_name
        if relation.link_schema:
            key = f"{relation.link_schema}.{relation.link_table_name}"
        pair = {relation.self_id_column_name, relation.target_id_column_name}

        existing = self.metadata.tables.get(key)
        if existing is not None:
            if not pair.issubset({c.name for c in existing.columns}):
                raise ConfigurationError(
                    f"Link table '{key}' is declared with different columns by two properties."
                )
            return

        Table(
            relation.link_table_name,
            self.metadata,
            Column(ID_PROPERTY_CODE, Integer, primary_key=True, autoincrement=True),
            Column(relation.self_id_column_name, Integer, nullable=False, index=True),
            Column(relation.target_id_column_name, Integer, nullable=False, index=True),
            UniqueConstraint(relation.self_id_column_name, relation.target_id_column_name),
            schema=relation.link_schema,
        )
