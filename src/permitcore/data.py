"""JSON:API response denormalisation.

Marketplace API responses are normalised: the primary ``data`` and the
``included`` resources reference each other through ``relationships``.
These helpers merge them into nested entities, e.g. a user with its
``profileImage`` relationship joined in place.
"""

from __future__ import annotations

from typing import Any, Optional

from .exceptions import EntityNotFoundError

Entities = dict[str, dict[str, dict[str, Any]]]


def _combined_relationships(old: Optional[dict], new: Optional[dict]) -> Optional[dict]:
    if not old and not new:
        return None
    return {**(old or {}), **(new or {})}


def _combined_resource_objects(old: dict[str, Any], new: dict[str, Any]) -> dict[str, Any]:
    resource_id, resource_type = old["id"], old["type"]
    if new["id"]["uuid"] != resource_id["uuid"] or new["type"] != resource_type:
        raise ValueError("Cannot merge resource objects with different ids or types")

    combined: dict[str, Any] = {"id": resource_id, "type": resource_type}
    if new.get("attributes") or old.get("attributes"):
        # Sparse attributes only update the fields they carry
        combined["attributes"] = {**(old.get("attributes") or {}), **(new.get("attributes") or {})}
    relationships = _combined_relationships(old.get("relationships"), new.get("relationships"))
    if relationships:
        combined["relationships"] = relationships
    return combined


def updated_entities(old_entities: Entities, api_response: dict[str, Any]) -> Entities:
    """Index every resource of an API response by type and uuid.

    Returns a new mapping; ``old_entities`` is not modified.
    """
    data = api_response.get("data")
    objects = data if isinstance(data, list) else [data]
    objects = [obj for obj in objects if obj] + list(api_response.get("included") or [])

    entities: Entities = {entity_type: dict(by_id) for entity_type, by_id in old_entities.items()}
    for resource in objects:
        by_id = entities.setdefault(resource["type"], {})
        uuid = resource["id"]["uuid"]
        existing = by_id.get(uuid)
        by_id[uuid] = _combined_resource_objects(dict(existing), resource) if existing else resource
    return entities


def denormalised_entities(
    entities: Entities,
    resources: list[dict[str, Any]],
    throw_if_not_found: bool = True,
) -> list[dict[str, Any]]:
    """Resolve resource references into entities with relationships joined in.

    Raises:
        EntityNotFoundError: If a resource (or any of its relationships) is
            missing and ``throw_if_not_found`` is set.
    """
    denormalised = []
    for resource in resources:
        resource_type = resource.get("type")
        resource_id = resource.get("id")
        uuid = resource_id.get("uuid") if resource_id else None
        entity = entities.get(resource_type, {}).get(uuid) if uuid else None

        if entity is None:
            if throw_if_not_found:
                raise EntityNotFoundError(
                    f'Entity with type "{resource_type}" and id "{uuid}" not found',
                    type=resource_type,
                    uuid=uuid,
                )
            continue

        entity_data = {key: value for key, value in entity.items() if key != "relationships"}
        for name, ref in (entity.get("relationships") or {}).items():
            ref_data = ref.get("data") if ref else None
            has_multiple = isinstance(ref_data, list)
            if not ref_data:
                entity_data[name] = [] if has_multiple else None
                continue
            refs = ref_data if has_multiple else [ref_data]
            related = denormalised_entities(entities, refs, True)
            entity_data[name] = related if has_multiple else related[0]
        denormalised.append(entity_data)
    return denormalised


def denormalised_response_entities(api_response: dict[str, Any]) -> list[dict[str, Any]]:
    """Denormalise the primary data of an API response."""
    data = api_response.get("data")
    resources = data if isinstance(data, list) else [data]
    if not data or not resources:
        return []
    entities = updated_entities({}, api_response)
    return denormalised_entities(entities, resources)


def first_asset_data(api_response: dict[str, Any]) -> dict[str, Any]:
    """Return ``data[0].attributes.data`` of an asset response, or ``{}``."""
    try:
        return api_response["data"][0]["attributes"]["data"] or {}
    except (KeyError, IndexError, TypeError):
        return {}


__all__ = [
    "denormalised_entities",
    "denormalised_response_entities",
    "first_asset_data",
    "updated_entities",
]
