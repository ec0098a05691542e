"""
Rapid Entities

Relation-aware query rewriting and cascading persistence over dynamically
declared data models.
"""

import importlib.metadata

__version__ = importlib.metadata.version("rapid-entities")

from .config import Settings, get_settings
from .core.entity_manager import EntityManager
from .data.events import EntityEventTypes, Event, EventBus
from .data.filters import CountOptions, FindOptions
from .db.server import DataServer
from .errors import (
    ConfigurationError,
    EntityEngineError,
    NotFoundError,
    UnsupportedOperationError,
    ValidationError,
)
from .schema.models import Model, Property
from .schema.registry import ModelRegistry

__all__ = [
    "ConfigurationError",
    "CountOptions",
    "DataServer",
    "EntityEngineError",
    "EntityEventTypes",
    "EntityManager",
    "Event",
    "EventBus",
    "FindOptions",
    "Model",
    "ModelRegistry",
    "NotFoundError",
    "Property",
    "Settings",
    "UnsupportedOperationError",
    "ValidationError",
    "get_settings",
]
