"""MongoDB document shapes for the users, games and posts collections."""

from datetime import datetime, timezone
from typing import Any, Literal

from bson import ObjectId
from bson.errors import InvalidId

GameStatus = Literal["upcoming", "ongoing", "past"]
GAME_STATUSES: tuple[str, ...] = ("upcoming", "ongoing", "past")

# Never returned by any read
USER_PRIVATE_PROJECTION = {"password": 0}


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def parse_object_id(value: str) -> ObjectId | None:
    """Return the ObjectId for ``value``, or None when it is not a valid id."""
    try:
        return ObjectId(value)
    except (InvalidId, TypeError):
        return None


# ==================== Users ====================

def new_user_document(name: str, email: str, password_hash: str) -> dict[str, Any]:
    return {
        "name": name,
        "email": email,
        "password": password_hash,
        "joinDate": utcnow(),
    }


def public_user(doc: dict[str, Any]) -> dict[str, Any]:
    """Public projection of a user document: id, name, email, joinDate."""
    return {
        "id": str(doc["_id"]),
        "name": doc.get("name"),
        "email": doc.get("email"),
        "joinDate": doc.get("joinDate"),
    }


# ==================== Games ====================

def new_game_document(fields: dict[str, Any], default_max_participants: int) -> dict[str, Any]:
    now = utcnow()
    return {
        "title": fields.get("title"),
        "location": fields.get("location"),
        "date": fields.get("date"),
        "fee": fields.get("fee"),
        "status": fields.get("status") or "upcoming",
        "icon": fields.get("icon") or "gamepad",
        "description": fields.get("description"),
        "maxParticipants": fields.get("maxParticipants") or default_max_participants,
        "currentParticipants": 0,
        "participants": [],
        "createdAt": now,
        "updatedAt": now,
    }


def participant_entry(user_id: str, user_name: str) -> dict[str, Any]:
    return {"userId": user_id, "userName": user_name, "joinedAt": utcnow()}


# ==================== Serialization ====================

def serialize_document(doc: dict[str, Any]) -> dict[str, Any]:
    """Make a raw document JSON friendly; ``_id`` becomes its hex string."""
    out = dict(doc)
    if isinstance(out.get("_id"), ObjectId):
        out["_id"] = str(out["_id"])
    return out
