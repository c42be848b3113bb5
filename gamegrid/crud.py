"""Database CRUD operations for users, games and posts.

Every function takes the ``Database`` explicitly; ids arrive as strings and a
malformed id behaves like a missing document.
"""

from typing import Any

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError

from .db import Database
from .logger import logger
from .models import USER_PRIVATE_PROJECTION, parse_object_id, utcnow


# ==================== Users ====================

async def insert_user(db: Database, document: dict[str, Any]) -> dict[str, Any]:
    """Insert a new user document. Raises ValueError on duplicate email."""
    try:
        result = await db.users.insert_one(document)
    except DuplicateKeyError as e:
        logger.debug(f"Duplicate email rejected: {document.get('email')}")
        raise ValueError("duplicate email") from e
    document["_id"] = result.inserted_id
    return document


async def select_user_by_email(db: Database, email: str) -> dict[str, Any] | None:
    """Retrieve a user by normalised email, including the password hash."""
    return await db.users.find_one({"email": email})


async def select_user(db: Database, user_id: str) -> dict[str, Any] | None:
    """Retrieve a user by id, without the password hash."""
    oid = parse_object_id(user_id)
    if oid is None:
        return None
    return await db.users.find_one({"_id": oid}, USER_PRIVATE_PROJECTION)


async def list_users(db: Database, skip: int, limit: int) -> tuple[list[dict[str, Any]], int]:
    """List users ordered by join date. Returns the page and the total count."""
    total = await db.users.count_documents({})
    cursor = db.users.find(
        {},
        USER_PRIVATE_PROJECTION,
        sort=[("joinDate", ASCENDING), ("_id", ASCENDING)],
        skip=skip,
        limit=limit,
    )
    users = await cursor.to_list(length=None)
    logger.debug(f"Query executed: returned {len(users)} users out of {total} total")
    return users, total


async def update_user(db: Database, user_id: str, fields: dict[str, Any]) -> tuple[int, int] | None:
    """Apply ``$set`` to one user. Returns (matched, modified), None for a malformed id.

    Raises ValueError when the new email belongs to another user.
    """
    oid = parse_object_id(user_id)
    if oid is None:
        return None
    try:
        result = await db.users.update_one({"_id": oid}, {"$set": fields})
    except DuplicateKeyError as e:
        logger.debug(f"Duplicate email rejected on update: id={user_id}")
        raise ValueError("duplicate email") from e
    return result.matched_count, result.modified_count


async def delete_user(db: Database, user_id: str) -> bool:
    """Delete a user by id. Returns True when a document was removed."""
    oid = parse_object_id(user_id)
    if oid is None:
        return False
    result = await db.users.delete_one({"_id": oid})
    return result.deleted_count == 1


# ==================== Games ====================

async def find_games(db: Database, query: dict[str, Any]) -> list[dict[str, Any]]:
    cursor = db.games.find(query, sort=[("createdAt", DESCENDING), ("_id", DESCENDING)])
    return await cursor.to_list(length=None)


async def select_game(db: Database, game_id: str) -> dict[str, Any] | None:
    oid = parse_object_id(game_id)
    if oid is None:
        return None
    return await db.games.find_one({"_id": oid})


async def insert_game(db: Database, document: dict[str, Any]) -> dict[str, Any]:
    result = await db.games.insert_one(document)
    document["_id"] = result.inserted_id
    return document


async def update_game(db: Database, game_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
    """Set ``fields`` on a game and return the updated document, None if missing."""
    oid = parse_object_id(game_id)
    if oid is None:
        return None
    return await db.games.find_one_and_update(
        {"_id": oid},
        {"$set": {**fields, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )


async def delete_game(db: Database, game_id: str) -> int:
    oid = parse_object_id(game_id)
    if oid is None:
        return 0
    result = await db.games.delete_one({"_id": oid})
    return result.deleted_count


async def count_games_by_status(db: Database) -> dict[str, int]:
    pipeline = [{"$group": {"_id": "$status", "count": {"$sum": 1}}}]
    rows = await db.games.aggregate(pipeline).to_list(length=None)
    return {row["_id"]: row["count"] for row in rows if row.get("_id")}


async def push_participant(
    db: Database,
    game: dict[str, Any],
    entry: dict[str, Any],
) -> dict[str, Any] | None:
    """Append ``entry`` to the roster if the game is still in the observed state.

    The filter pins the counter and capacity read by the caller and excludes
    games that already list the user, so two racing joins cannot both pass
    the capacity check. Returns the updated game, or None when the filter
    missed and the caller should re-read.
    """
    return await db.games.find_one_and_update(
        {
            "_id": game["_id"],
            # None also matches a game stored without the counter
            "currentParticipants": game.get("currentParticipants"),
            "maxParticipants": game.get("maxParticipants"),
            "participants.userId": {"$ne": entry["userId"]},
        },
        {
            "$push": {"participants": entry},
            "$inc": {"currentParticipants": 1},
            "$set": {"updatedAt": utcnow()},
        },
        return_document=ReturnDocument.AFTER,
    )


async def pull_participant(db: Database, game_id: str, user_id: str) -> dict[str, Any] | None:
    """Remove ``user_id`` from the roster, only if it is on it. Returns the updated game."""
    oid = parse_object_id(game_id)
    if oid is None:
        return None
    return await db.games.find_one_and_update(
        {"_id": oid, "participants.userId": user_id},
        {
            "$pull": {"participants": {"userId": user_id}},
            "$inc": {"currentParticipants": -1},
            "$set": {"updatedAt": utcnow()},
        },
        return_document=ReturnDocument.AFTER,
    )


# ==================== Posts ====================

async def list_posts(db: Database, skip: int, limit: int) -> tuple[list[dict[str, Any]], int]:
    total = await db.posts.count_documents({})
    cursor = db.posts.find(
        {},
        sort=[("createdAt", DESCENDING), ("_id", DESCENDING)],
        skip=skip,
        limit=limit,
    )
    return await cursor.to_list(length=None), total


async def select_post(db: Database, post_id: str) -> dict[str, Any] | None:
    oid = parse_object_id(post_id)
    if oid is None:
        return None
    return await db.posts.find_one({"_id": oid})


async def insert_post(db: Database, document: dict[str, Any]) -> dict[str, Any]:
    result = await db.posts.insert_one(document)
    document["_id"] = result.inserted_id
    return document


async def update_post(db: Database, post_id: str, fields: dict[str, Any]) -> dict[str, Any] | None:
    oid = parse_object_id(post_id)
    if oid is None:
        return None
    return await db.posts.find_one_and_update(
        {"_id": oid},
        {"$set": {**fields, "updatedAt": utcnow()}},
        return_document=ReturnDocument.AFTER,
    )


async def delete_post(db: Database, post_id: str) -> bool:
    oid = parse_object_id(post_id)
    if oid is None:
        return False
    result = await db.posts.delete_one({"_id": oid})
    return result.deleted_count == 1
