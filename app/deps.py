"""Shared FastAPI dependencies."""

from beanie import PydanticObjectId
from bson.errors import InvalidId
from fastapi import Header

from app.core.exceptions import UnauthorizedError
from app.core.logging import bind_user_id
from app.models.user import User
from app.storage.base import get_store

USER_ID_HEADER = "X-User-ID"


async def get_current_user(x_user_id: str | None = Header(default=None, alias=USER_ID_HEADER)) -> User:
    """Dependency: the authenticating gateway in front of us sets X-User-ID; load that User."""
    if not x_user_id:
        raise UnauthorizedError("Not authenticated")
    try:
        user_id = PydanticObjectId(x_user_id)
    except (InvalidId, TypeError):
        raise UnauthorizedError("Invalid user id")
    user = await get_store().get_user(user_id)
    if not user:
        raise UnauthorizedError("User not found")
    bind_user_id(str(user.id))
    return user
