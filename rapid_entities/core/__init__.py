"""Relation-aware query rewriting and cascading persistence."""

from .cascade import CascadeGuard, CascadePersister, UpdateResult
from .entity_finder import EntityFinder
from .entity_manager import EntityManager
from .filter_rewriter import FilterRewriter
from .relation_expander import RelationExpander

__all__ = [
    "CascadeGuard",
    "CascadePersister",
    "EntityFinder",
    "EntityManager",
    "FilterRewriter",
    "RelationExpander",
    "UpdateResult",
]
