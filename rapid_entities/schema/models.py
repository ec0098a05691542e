"""
Model and property definitions.

A model describes one logical collection. Its properties are either scalar
columns or relations to another model. Every relation property is resolved,
when the model is validated, into exactly one storage strategy:

- ``OwningOne``: the owner row holds the target id in ``targetIdColumnName``.
- ``ManyForeignKey``: target rows hold the owner id in ``selfIdColumnName``.
- ``ManyLinkTable``: a link table holds ``(selfIdColumnName, targetIdColumnName)`` pairs.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import List, Literal, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator
from pydantic.alias_generators import to_camel

from ..errors import ConfigurationError, NotFoundError

ID_PROPERTY_CODE = "id"


@dataclass(frozen=True)
class OwningOne:
    """The owner row references a single target row."""

    target_singular_code: str
    target_id_column_name: str

    is_many = False


@dataclass(frozen=True)
class ManyForeignKey:
    """Target rows reference the owner row."""

    target_singular_code: str
    self_id_column_name: str

    is_many = True


@dataclass(frozen=True)
class ManyLinkTable:
    """Owner and target rows are paired through a link table."""

    target_singular_code: str
    link_table_name: str
    self_id_column_name: str
    target_id_column_name: str
    link_schema: Optional[str] = None

    is_many = True


RelationKind = Union[OwningOne, ManyForeignKey, ManyLinkTable]


class Property(BaseModel):
    """A named field of a model."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    code: str = Field(..., min_length=1)
    name: Optional[str] = None
    type: str = Field(default="text", description="Logical data type of a scalar column")
    column_name: Optional[str] = None
    required: bool = False

    relation: Optional[Literal["one", "many"]] = None
    target_singular_code: Optional[str] = None
    target_id_column_name: Optional[str] = None
    self_id_column_name: Optional[str] = None
    link_table_name: Optional[str] = None
    link_schema: Optional[str] = None

    _relation_kind: Optional[RelationKind] = PrivateAttr(default=None)

    @property
    def is_relation(self) -> bool:
        return self.relation is not None

    @property
    def column(self) -> str:
        """Physical column of a scalar property."""
        return self.column_name or self.code

    @property
    def relation_kind(self) -> RelationKind:
        if self._relation_kind is None:
            raise ConfigurationError(f"Property '{self.code}' is not a relation property.")
        return self._relation_kind

    def resolve_relation(self, model_code: str) -> None:
        """Resolve the storage strategy of a relation property."""
        if not self.is_relation:
            return

        def missing(option: str) -> ConfigurationError:
            return ConfigurationError(
                f"'{option}' should be configured for property '{self.code}' of model '{model_code}'."
            )

        if not self.target_singular_code:
            raise missing("targetSingularCode")

        if self.relation == "one":
            if self.link_table_name:
                raise ConfigurationError(
                    f"Property '{self.code}' of model '{model_code}' is a 'one' relation "
                    "and can not be stored in a link table."
                )
            if not self.target_id_column_name:
                raise missing("targetIdColumnName")
            self._relation_kind = OwningOne(
                target_singular_code=self.target_singular_code,
                target_id_column_name=self.target_id_column_name,
            )
        elif self.link_table_name:
            if not self.self_id_column_name:
                raise missing("selfIdColumnName")
            if not self.target_id_column_name:
                raise missing("targetIdColumnName")
            self._relation_kind = ManyLinkTable(
                target_singular_code=self.target_singular_code,
                link_table_name=self.link_table_name,
                self_id_column_name=self.self_id_column_name,
                target_id_column_name=self.target_id_column_name,
                link_schema=self.link_schema,
            )
        else:
            if not self.self_id_column_name:
                raise missing("selfIdColumnName")
            self._relation_kind = ManyForeignKey(
                target_singular_code=self.target_singular_code,
                self_id_column_name=self.self_id_column_name,
            )


class Model(BaseModel):
    """Schema of a logical collection."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")

    namespace: str = Field(..., min_length=1)
    singular_code: str = Field(..., min_length=1)
    plural_code: str = Field(..., min_length=1)
    name: Optional[str] = None
    table_name: Optional[str] = None
    db_schema: Optional[str] = Field(default=None, alias="schema")
    properties: List[Property] = Field(default_factory=list)

    @model_validator(mode="after")
    def _resolve_relations(self) -> "Model":
        seen = set()
        for prop in self.properties:
            if prop.code in seen:
                raise ConfigurationError(
                    f"Property '{prop.code}' is declared twice in model '{self.full_code}'."
                )
            seen.add(prop.code)
            prop.resolve_relation(self.full_code)
        return self

    @property
    def full_code(self) -> str:
        return f"{self.namespace}.{self.singular_code}"

    @property
    def physical_table_name(self) -> str:
        return self.table_name or self.plural_code

    @property
    def scalar_properties(self) -> List[Property]:
        return [p for p in self.properties if not p.is_relation and p.code != ID_PROPERTY_CODE]

    @property
    def relation_properties(self) -> List[Property]:
        return [p for p in self.properties if p.is_relation]

    def get_property(self, code: str) -> Optional[Property]:
        for prop in self.properties:
            if prop.code == code:
                return prop
        return None

    def require_property(self, code: str) -> Property:
        prop = self.get_property(code)
        if prop is None:
            raise NotFoundError(
                f"Collection '{self.full_code}' does not have a property '{code}'."
            )
        return prop
