"""Model schema and registry."""

from .models import (
    ID_PROPERTY_CODE,
    ManyForeignKey,
    ManyLinkTable,
    Model,
    OwningOne,
    Property,
    RelationKind,
)
from .registry import ModelRef, ModelRegistry

__all__ = [
    "ID_PROPERTY_CODE",
    "ManyForeignKey",
    "ManyLinkTable",
    "Model",
    "ModelRef",
    "ModelRegistry",
    "OwningOne",
    "Property",
    "RelationKind",
]
