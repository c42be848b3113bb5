"""Business logic layer for users, games and posts.

Handles validation, password hashing, token issuance and the roster rules for
games. Storage faults are logged here and surfaced as ``InternalError``; the
message sent to clients stays generic.
"""

from contextlib import contextmanager
from typing import Any, Iterator

from fastapi.concurrency import run_in_threadpool
from pymongo.errors import PyMongoError

from . import crud
from .auth import (
    TokenConfigurationError,
    check_ownership,
    create_access_token,
    hash_password,
    verify_password,
)
from .config import settings
from .db import Database
from .errors import (
    BadRequestError,
    ConflictError,
    InternalError,
    NotFoundError,
    UnauthorizedError,
)
from .logger import logger
from .models import (
    GAME_STATUSES,
    new_game_document,
    new_user_document,
    participant_entry,
    public_user,
    serialize_document,
    utcnow,
)
from .schemas import (
    GameCreate,
    GameStats,
    GameUpdate,
    LoginResponse,
    MessageResponse,
    PaginatedUserResponse,
    PostCreate,
    PostUpdate,
    RegisterResponse,
    UserLogin,
    UserOut,
    UserRegister,
    UserResponse,
    UserUpdate,
)
from .utils import literal_pattern, normalize_email

INVALID_CREDENTIALS = "Invalid email or password"

# ==================== Helper Functions ====================


@contextmanager
def storage_errors(action: str, *, message: str = "Internal server error", legacy: bool = False) -> Iterator[None]:
    """Turn driver failures into InternalError after logging them."""
    try:
        yield
    except PyMongoError as e:
        logger.error(f"Database error while {action}: {e}", exc_info=True)
        raise InternalError(message, error=str(e), legacy=legacy) from e


def _validate_pagination(page: int, limit: int) -> tuple[int, int, int]:
    """Validate and normalize pagination parameters.

    Returns:
        tuple: (page, limit, skip) normalized values
    """
    if page < 1:
        page = settings.DEFAULT_PAGE
    if page > settings.MAX_PAGE:
        page = settings.MAX_PAGE
    if limit < 1:
        limit = settings.DEFAULT_LIMIT
    if limit > settings.MAX_LIMIT:
        limit = settings.MAX_LIMIT
    skip = (page - 1) * limit
    return page, limit, skip


def _check_password_length(password: str) -> None:
    if len(password) < settings.PASSWORD_MIN_LENGTH:
        raise BadRequestError(
            f"Password must be at least {settings.PASSWORD_MIN_LENGTH} characters long"
        )


async def _hash(password: str) -> str:
    try:
        return await run_in_threadpool(hash_password, password)
    except ValueError as e:
        # bcrypt refuses passwords over 72 bytes
        raise BadRequestError("Password is too long") from e


def _display_name(claims: dict[str, Any]) -> str:
    return claims.get("name") or claims.get("email") or "Anonymous User"


# ==================== Authentication ====================


async def register_user(db: Database, data: UserRegister) -> RegisterResponse:
    """Register a new user. The email must not be in use under any casing."""
    if not (data.name and data.email and data.password):
        raise BadRequestError("Name, email, and password are required")
    _check_password_length(data.password)

    logger.info(f"Registering new user: {data.email}")

    with storage_errors("registering user"):
        if await crud.select_user_by_email(db, data.email):
            logger.warning(f"Registration failed - email already exists: {data.email}")
            raise ConflictError("Email already exists")

        password_hash = await _hash(data.password)
        try:
            user = await crud.insert_user(db, new_user_document(data.name, data.email, password_hash))
        except ValueError as e:
            # Lost the race against a concurrent registration; the unique index caught it
            logger.warning(f"Registration failed - duplicate key on insert: {data.email}")
            raise ConflictError("Email already exists") from e

    logger.info(f"User registered successfully: id={user['_id']} email={user['email']}")
    return RegisterResponse(message="User created successfully", userId=str(user["_id"]))


async def authenticate_user(db: Database, data: UserLogin) -> LoginResponse:
    """Check credentials and issue a 24h bearer token.

    Unknown email and wrong password fail with the same message so that the
    response does not reveal which one was wrong.
    """
    email = normalize_email(data.email or "")
    if not email or not data.password:
        raise BadRequestError("Email and password are required")

    logger.info(f"Authentication attempt for user: {email}")

    with storage_errors("authenticating user"):
        user = await crud.select_user_by_email(db, email)

    if not user:
        logger.warning(f"Authentication failed - user not found: {email}")
        raise UnauthorizedError(INVALID_CREDENTIALS)

    if not await run_in_threadpool(verify_password, data.password, user.get("password") or ""):
        logger.warning(f"Authentication failed - invalid password for user: {email}")
        raise UnauthorizedError(INVALID_CREDENTIALS)

    claims = {"userId": str(user["_id"]), "email": user["email"], "name": user["name"]}
    try:
        token = create_access_token(claims)
    except TokenConfigurationError as e:
        logger.error("Cannot issue token: JWT_SECRET_KEY is not configured")
        raise InternalError("Server configuration error", error=str(e)) from e

    logger.info(f"Authentication successful for user: {email} (id={claims['userId']})")
    return LoginResponse(message="Login successful", token=token, user=UserOut(**public_user(user)))


# ==================== User Operations ====================


async def list_users(
    db: Database,
    page: int = settings.DEFAULT_PAGE,
    limit: int = settings.DEFAULT_LIMIT,
) -> PaginatedUserResponse:
    """List users with pagination; the password hash is never selected."""
    page, limit, skip = _validate_pagination(page, limit)
    logger.debug(f"Listing users: page={page} limit={limit}")

    with storage_errors("listing users"):
        users, total = await crud.list_users(db, skip, limit)

    pages = (total + limit - 1) // limit
    return PaginatedUserResponse(
        data=[UserOut(**public_user(u)) for u in users],
        total=total,
        page=page,
        limit=limit,
        pages=pages,
    )


async def get_user(db: Database, user_id: str) -> UserResponse:
    logger.debug(f"Fetching user: id={user_id}")
    with storage_errors("fetching user"):
        user = await crud.select_user(db, user_id)
    if not user:
        logger.warning(f"User not found: id={user_id}")
        raise NotFoundError("User not found")
    return UserResponse(data=UserOut(**public_user(user)))


async def update_user(db: Database, user_id: str, data: UserUpdate) -> MessageResponse:
    """Partially update a profile. Callers must already have passed the ownership check."""
    fields: dict[str, Any] = {}
    if data.name:
        fields["name"] = data.name
    if data.email:
        fields["email"] = data.email
    if data.password:
        _check_password_length(data.password)
        fields["password"] = await _hash(data.password)
    if not fields:
        raise BadRequestError("No fields to update")

    logger.info(f"Updating user: id={user_id} fields={sorted(fields)}")
    with storage_errors("updating user"):
        if "email" in fields:
            other = await crud.select_user_by_email(db, fields["email"])
            if other and str(other["_id"]) != user_id:
                logger.warning(f"Update rejected - email already in use: {fields['email']}")
                raise ConflictError("Email already exists")
        try:
            result = await crud.update_user(db, user_id, fields)
        except ValueError as e:
            raise ConflictError("Email already exists") from e

    if result is None or result[0] == 0:
        raise NotFoundError("User not found")

    _, modified = result
    return MessageResponse(message="User updated successfully", modifiedCount=modified)


async def delete_user(db: Database, user_id: str) -> MessageResponse:
    logger.info(f"Deleting user: id={user_id}")
    with storage_errors("deleting user"):
        deleted = await crud.delete_user(db, user_id)
    if not deleted:
        logger.warning(f"Cannot delete - user not found: id={user_id}")
        raise NotFoundError("User not found")
    logger.info(f"User deleted successfully: id={user_id}")
    return MessageResponse(message="User deleted successfully")


# ==================== Games ====================


async def list_games(
    db: Database,
    status: str | None = None,
    location: str | None = None,
    search: str | None = None,
) -> list[dict[str, Any]]:
    """List games, optionally filtered by status, exact location and a title/location search."""
    query: dict[str, Any] = {}
    if status:
        query["status"] = status
    if location:
        query["location"] = location
    if search:
        pattern = literal_pattern(search)
        query["$or"] = [
            {"title": {"$regex": pattern, "$options": "i"}},
            {"location": {"$regex": pattern, "$options": "i"}},
        ]

    with storage_errors("fetching games", message="Error fetching games", legacy=True):
        games = await crud.find_games(db, query)
    return [serialize_document(g) for g in games]


async def game_stats(db: Database) -> GameStats:
    with storage_errors("computing game statistics", message="Error fetching statistics", legacy=True):
        counts = await crud.count_games_by_status(db)

    overview = GameStats()
    for status, count in counts.items():
        if status in GAME_STATUSES:
            setattr(overview, status, count)
        overview.total += count
    return overview


async def get_game(db: Database, game_id: str) -> dict[str, Any]:
    with storage_errors("fetching game", message="Error fetching game", legacy=True):
        game = await crud.select_game(db, game_id)
    if not game:
        raise NotFoundError("Game not found", legacy=True)
    return serialize_document(game)


async def create_game(db: Database, data: GameCreate) -> dict[str, Any]:
    document = new_game_document(data.model_dump(), settings.GAME_DEFAULT_MAX_PARTICIPANTS)
    with storage_errors("creating game", message="Error creating game", legacy=True):
        game = await crud.insert_game(db, document)
    logger.info(f"Game created: id={game['_id']} title={game['title']!r}")
    return serialize_document(game)


async def update_game(db: Database, game_id: str, data: GameUpdate) -> dict[str, Any]:
    fields = data.model_dump(exclude_none=True)
    if not fields:
        raise BadRequestError("No fields to update", legacy=True)

    with storage_errors("updating game", message="Error updating game", legacy=True):
        if "maxParticipants" in fields:
            current = await crud.select_game(db, game_id)
            if not current:
                raise NotFoundError("Game not found", legacy=True)
            if fields["maxParticipants"] < (current.get("currentParticipants") or 0):
                raise BadRequestError(
                    "maxParticipants cannot be lower than currentParticipants", legacy=True
                )
        game = await crud.update_game(db, game_id, fields)

    if not game:
        raise NotFoundError("Game not found", legacy=True)
    logger.info(f"Game updated: id={game_id} fields={sorted(fields)}")
    return serialize_document(game)


async def delete_game(db: Database, game_id: str) -> dict[str, int]:
    with storage_errors("deleting game", message="Error deleting game", legacy=True):
        deleted = await crud.delete_game(db, game_id)
    if not deleted:
        raise NotFoundError("Game not found", legacy=True)
    logger.info(f"Game deleted: id={game_id}")
    return {"deletedCount": deleted}


async def join_game(db: Database, game_id: str, claims: dict[str, Any]) -> dict[str, Any]:
    """Add the caller to a game's roster.

    The roster push is conditional on the state that was checked. When another
    request changed the game in between, the game is re-read and the checks
    run again, up to GAME_JOIN_MAX_ATTEMPTS times.
    """
    user_id = str(claims["userId"])
    entry = participant_entry(user_id, _display_name(claims))

    with storage_errors("joining game", message="Error joining game", legacy=True):
        for attempt in range(1, settings.GAME_JOIN_MAX_ATTEMPTS + 1):
            game = await crud.select_game(db, game_id)
            if not game:
                raise NotFoundError("Game not found", legacy=True)

            if any(p.get("userId") == user_id for p in game.get("participants") or []):
                raise BadRequestError("Already joined this game", legacy=True)

            current = game.get("currentParticipants") or 0
            max_participants = game.get("maxParticipants")
            if max_participants is not None and current >= max_participants:
                raise BadRequestError("Game is full", legacy=True)

            updated = await crud.push_participant(db, game, entry)
            if updated:
                logger.info(f"User {user_id} joined game {game_id}")
                return {"message": "Successfully joined the game", "game": serialize_document(updated)}

            logger.info(f"Game {game_id} changed during join (attempt {attempt}), re-checking")

    logger.warning(f"Join gave up after {settings.GAME_JOIN_MAX_ATTEMPTS} attempts: game={game_id}")
    raise ConflictError("Game was modified concurrently, please retry", legacy=True)


async def leave_game(db: Database, game_id: str, claims: dict[str, Any]) -> dict[str, Any]:
    """Remove the caller from a game's roster. Non-members get a 400 and nothing changes."""
    user_id = str(claims["userId"])

    with storage_errors("leaving game", message="Error leaving game", legacy=True):
        updated = await crud.pull_participant(db, game_id, user_id)
        if updated is None:
            if not await crud.select_game(db, game_id):
                raise NotFoundError("Game not found", legacy=True)
            raise BadRequestError("Not a participant of this game", legacy=True)

    logger.info(f"User {user_id} left game {game_id}")
    return {"message": "Successfully left the game", "game": serialize_document(updated)}


# ==================== Posts ====================


async def list_posts(
    db: Database,
    page: int = settings.DEFAULT_PAGE,
    limit: int = settings.DEFAULT_LIMIT,
) -> dict[str, Any]:
    page, limit, skip = _validate_pagination(page, limit)
    with storage_errors("listing posts"):
        posts, total = await crud.list_posts(db, skip, limit)
    return {
        "success": True,
        "data": [serialize_document(p) for p in posts],
        "total": total,
        "page": page,
        "limit": limit,
        "pages": (total + limit - 1) // limit,
    }


async def _require_post(db: Database, post_id: str) -> dict[str, Any]:
    with storage_errors("fetching post"):
        post = await crud.select_post(db, post_id)
    if not post:
        raise NotFoundError("Post not found")
    return post


async def get_post(db: Database, post_id: str) -> dict[str, Any]:
    return {"success": True, "data": serialize_document(await _require_post(db, post_id))}


async def create_post(db: Database, data: PostCreate, claims: dict[str, Any]) -> dict[str, Any]:
    now = utcnow()
    document = {
        "title": data.title,
        "content": data.content,
        "authorId": str(claims["userId"]),
        "authorName": _display_name(claims),
        "createdAt": now,
        "updatedAt": now,
    }
    with storage_errors("creating post"):
        post = await crud.insert_post(db, document)
    logger.info(f"Post created: id={post['_id']} author={document['authorId']}")
    return {"success": True, "message": "Post created successfully", "data": serialize_document(post)}


async def update_post(db: Database, post_id: str, data: PostUpdate, claims: dict[str, Any]) -> dict[str, Any]:
    post = await _require_post(db, post_id)
    check_ownership(claims, post.get("authorId"))

    fields = data.model_dump(exclude_none=True)
    if not fields:
        raise BadRequestError("No fields to update")

    with storage_errors("updating post"):
        updated = await crud.update_post(db, post_id, fields)
    if not updated:
        raise NotFoundError("Post not found")
    return {"success": True, "message": "Post updated successfully", "data": serialize_document(updated)}


async def delete_post(db: Database, post_id: str, claims: dict[str, Any]) -> dict[str, Any]:
    post = await _require_post(db, post_id)
    check_ownership(claims, post.get("authorId"))

    with storage_errors("deleting post"):
        deleted = await crud.delete_post(db, post_id)
    if not deleted:
        raise NotFoundError("Post not found")
    logger.info(f"Post deleted: id={post_id}")
    return {"success": True, "message": "Post deleted successfully"}
