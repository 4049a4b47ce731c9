"""
JSON schema validation for persisted documents.

The schemas check structure and the per-record rules that must hold on disk
(non-negative item quantities, strictly positive ownership quantities). The
cross-record allocation invariant is not expressible here and is repaired by
the consistency enforcer after load.
"""

from __future__ import annotations

from typing import Any

from jsonschema import Draft7Validator
from jsonschema import ValidationError as JSONSchemaValidationError


class DocumentSchemaValidationError(Exception):
    """Raised when a persisted document fails schema validation."""


_TIMESTAMP = {"type": ["string", "null"]}

INVENTORY_DOCUMENT_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "$id": "https://schemas.party-inventory.local/inventory-document.json",
    "type": "object",
    "required": ["groupId", "version", "items", "itemOwnerships"],
    "additionalProperties": True,
    "properties": {
        "groupId": {"type": "string", "minLength": 1},
        "groupName": {"type": "string"},
        "version": {"type": "integer", "minimum": 0},
        "lastSaved": _TIMESTAMP,
        "items": {"type": "array", "items": {"$ref": "#/definitions/item"}},
        "itemOwnerships": {"type": "array", "items": {"$ref": "#/definitions/ownership"}},
        "characters": {"type": "array", "items": {"$ref": "#/definitions/character"}},
        "users": {"type": "array", "items": {"$ref": "#/definitions/user"}},
    },
    "definitions": {
        "item": {
            "type": "object",
            "required": ["id", "name", "category", "quantity"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "name": {"type": "string", "minLength": 1},
                "category": {"type": "string"},
                "quantity": {"type": "integer", "minimum": 0},
                "weight": {"type": "number", "minimum": 0},
                "value": {"type": "integer", "minimum": 0},
                "description": {"type": "string"},
                "owner": {"type": "string"},
                "thumbnailUrl": {"type": "string"},
                "sourceUrl": {"type": "string"},
                "dateAdded": _TIMESTAMP,
                "lastModified": _TIMESTAMP,
                "properties": {"type": "object", "additionalProperties": {"type": "string"}},
                "playerNotes": {"type": "array", "items": {"type": "object"}},
            },
        },
        "ownership": {
            "type": "object",
            "required": ["itemId", "characterId", "quantityOwned"],
            "properties": {
                "itemId": {"type": "string", "minLength": 1},
                "characterId": {"type": "string", "minLength": 1},
                "quantityOwned": {"type": "integer"},
                "claimedDate": _TIMESTAMP,
                "notes": {"type": ["string", "null"]},
            },
        },
        "character": {
            "type": "object",
            "required": ["id", "name"],
            "properties": {
                "id": {"type": "string", "minLength": 1},
                "name": {"type": "string"},
                "ownerUserId": {"type": "string"},
                "class": {"type": "string"},
                "level": {"type": "integer", "minimum": 0},
                "isActive": {"type": "boolean"},
            },
        },
        "user": {
            "type": "object",
            "required": ["clientId"],
            "properties": {
                "clientId": {"type": "integer", "minimum": 0},
                "userId": {"type": "string"},
                "name": {"type": "string"},
                "permission": {"type": "integer", "minimum": 0, "maximum": 4},
                "isOnline": {"type": "boolean"},
            },
        },
    },
}

GROUP_REGISTRY_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "$id": "https://schemas.party-inventory.local/group-registry.json",
    "type": "object",
    "required": ["groups"],
    "properties": {
        "groups": {
            "type": "array",
            "items": {
                "type": "object",
                "required": ["id", "name"],
                "properties": {
                    "id": {"type": "string", "minLength": 1},
                    "name": {"type": "string"},
                    "members": {"type": "array", "items": {"type": "object", "required": ["userId"]}},
                },
            },
        },
        "currentGroupId": {"type": ["string", "null"]},
    },
}

USER_REGISTRY_SCHEMA: dict[str, Any] = {
    "$schema": "http://json-schema.org/draft-07/schema#",
    "$id": "https://schemas.party-inventory.local/user-registry.json",
    "type": "object",
    "required": ["users"],
    "properties": {"users": {"type": "array", "items": INVENTORY_DOCUMENT_SCHEMA["definitions"]["user"]}},
}

_VALIDATORS: dict[str, Draft7Validator] = {}


def _build_validator(schema: dict[str, Any]) -> Draft7Validator:
    """Internal helper to construct (and cache) a Draft7 validator instance."""
    key = schema["$id"]
    validator = _VALIDATORS.get(key)
    if validator is None:
        validator = Draft7Validator(schema)
        _VALIDATORS[key] = validator
    return validator


def _validate(schema: dict[str, Any], payload: dict[str, Any], label: str) -> None:
    validator = _build_validator(schema)
    try:
        validator.validate(payload)
    except JSONSchemaValidationError as exc:
        path = "/".join(str(p) for p in exc.absolute_path) or "<root>"
        raise DocumentSchemaValidationError(f"{label} validation failed at {path}: {exc.message}") from exc


def validate_inventory_document(payload: dict[str, Any], *, for_write: bool = False) -> None:
    """
    Validate a group inventory document.

    Raises:
        DocumentSchemaValidationError: if validation fails.
    """
    _validate(INVENTORY_DOCUMENT_SCHEMA, payload, "Inventory document")
    # Non-positive ownerships are tolerated on load (the repair pass drops
    # them) but never written.
    if for_write:
        for index, record in enumerate(payload.get("itemOwnerships", [])):
            quantity = record.get("quantityOwned")
            if not isinstance(quantity, int) or quantity < 1:
                raise DocumentSchemaValidationError(
                    f"Inventory document validation failed at itemOwnerships/{index}/quantityOwned: "
                    f"{quantity!r} is not a positive integer"
                )


def validate_group_registry(payload: dict[str, Any]) -> None:
    """Validate the group registry document."""
    _validate(GROUP_REGISTRY_SCHEMA, payload, "Group registry")


def validate_user_registry(payload: dict[str, Any]) -> None:
    """Validate the user registry document."""
    _validate(USER_REGISTRY_SCHEMA, payload, "User registry")
