"""
Data manager API routes.

REST endpoints for every registered model, addressed as
``/{namespace}/{pluralCode}``.
"""

from typing import Any, Dict, List

from fastapi import APIRouter, Body, Depends, HTTPException, Request

from .core.entity_manager import EntityManager
from .data.filters import CountOptions, FindOptions
from .db.server import DataServer

router = APIRouter(tags=["data"])

SOURCE = "dataManager"


def get_data_server(request: Request) -> DataServer:
    """Dependency to get the data server of the application."""
    server = getattr(request.app.state, "data_server", None)
    if server is None:
        raise HTTPException(status_code=503, detail="Data server not initialized")
    return server


def _entity_manager(server: DataServer, namespace: str, plural_code: str) -> EntityManager:
    model = server.registry.get_model_by_plural_code(namespace, plural_code)
    if model is None:
        raise HTTPException(
            status_code=404,
            detail=f"Collection '{namespace}/{plural_code}' was not found",
        )
    return server.get_entity_manager(model)


# =============================================================================
# Operations
# =============================================================================


@router.post("/{namespace}/{plural_code}/operations/find")
async def find_entities(
    namespace: str,
    plural_code: str,
    body: Dict[str, Any] = Body(default={}),
    server: DataServer = Depends(get_data_server),
) -> Dict[str, Any]:
    """Find entities with filters, ordering, pagination and relation expansion."""
    manager = _entity_manager(server, namespace, plural_code)
    options = FindOptions.from_dict(body)
    entities = await manager.find_entities(options)
    count = await manager.count(CountOptions(filters=options.filters))
    return {"list": entities, "total": count["total"]}


@router.post("/{namespace}/{plural_code}/operations/count")
async def count_entities(
    namespace: str,
    plural_code: str,
    body: Dict[str, Any] = Body(default={}),
    server: DataServer = Depends(get_data_server),
) -> Dict[str, int]:
    """Count entities matching the filters."""
    manager = _entity_manager(server, namespace, plural_code)
    return await manager.count(CountOptions.from_dict(body))


@router.post("/{namespace}/{plural_code}/operations/create_batch", status_code=201)
async def create_entities_batch(
    namespace: str,
    plural_code: str,
    body: Dict[str, Any] = Body(...),
    server: DataServer = Depends(get_data_server),
) -> List[Dict[str, Any]]:
    """Create several entities."""
    manager = _entity_manager(server, namespace, plural_code)
    entities = body.get("entities")
    if not isinstance(entities, list):
        raise HTTPException(status_code=400, detail="'entities' must be an array")
    return await manager.create_entities_batch(entities, source=SOURCE)


@router.post("/{namespace}/{plural_code}/operations/add_relations")
async def add_entity_relations(
    namespace: str,
    plural_code: str,
    body: Dict[str, Any] = Body(...),
    server: DataServer = Depends(get_data_server),
) -> Dict[str, Any]:
    """Link related entities through a link-table relation."""
    manager = _entity_manager(server, namespace, plural_code)
    await manager.add_relations(
        body.get("id"), body.get("property"), body.get("relations") or [], source=SOURCE
    )
    return {"status": "success"}


@router.post("/{namespace}/{plural_code}/operations/remove_relations")
async def remove_entity_relations(
    namespace: str,
    plural_code: str,
    body: Dict[str, Any] = Body(...),
    server: DataServer = Depends(get_data_server),
) -> Dict[str, Any]:
    """Unlink related entities from a link-table relation."""
    manager = _entity_manager(server, namespace, plural_code)
    await manager.remove_relations(
        body.get("id"), body.get("property"), body.get("relations") or [], source=SOURCE
    )
    return {"status": "success"}


# =============================================================================
# Single entity endpoints
# =============================================================================


@router.post("/{namespace}/{plural_code}", status_code=201)
async def create_entity(
    namespace: str,
    plural_code: str,
    entity: Dict[str, Any] = Body(...),
    server: DataServer = Depends(get_data_server),
) -> Dict[str, Any]:
    """Create an entity with its embedded relations."""
    manager = _entity_manager(server, namespace, plural_code)
    return await manager.create_entity(entity, source=SOURCE)


@router.get("/{namespace}/{plural_code}/{id}")
async def get_entity(
    namespace: str,
    plural_code: str,
    id: int,
    server: DataServer = Depends(get_data_server),
) -> Dict[str, Any]:
    """Get an entity by ID."""
    manager = _entity_manager(server, namespace, plural_code)
    entity = await manager.find_by_id(id)
    if entity is None:
        raise HTTPException(status_code=404, detail="Entity not found")
    return entity


@router.patch("/{namespace}/{plural_code}/{id}")
async def update_entity(
    namespace: str,
    plural_code: str,
    id: int,
    entity: Dict[str, Any] = Body(...),
    server: DataServer = Depends(get_data_server),
) -> Dict[str, Any]:
    """Update an entity by ID."""
    manager = _entity_manager(server, namespace, plural_code)
    return await manager.update_entity_by_id(id, entity, source=SOURCE)


@router.delete("/{namespace}/{plural_code}/{id}")
async def delete_entity(
    namespace: str,
    plural_code: str,
    id: int,
    server: DataServer = Depends(get_data_server),
) -> Dict[str, Any]:
    """Delete an entity by ID."""
    manager = _entity_manager(server, namespace, plural_code)
    await manager.delete_by_id(id, source=SOURCE)
    return {"status": "success"}
