import jwt
from fastapi import Depends, Header
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.config import settings
from app.core.exceptions import ForbiddenError, UnauthorizedError
from app.core.security import decode_token
from app.db.postgres import get_db
from app.jobs.runner import JobRunner, create_job_runner
from app.models.user import User

_job_runner: JobRunner | None = None


async def get_current_user(
    db: AsyncSession = Depends(get_db),
    authorization: str | None = Header(default=None, description="Bearer <token>"),
) -> User:
    if not authorization or not authorization.startswith("Bearer "):
        raise UnauthorizedError("Missing or invalid authorization header")

    token = authorization[7:]
    try:
        payload = decode_token(token)
    except jwt.PyJWTError:
        raise UnauthorizedError("Invalid or expired token")

    if payload.get("type") != "access":
        raise UnauthorizedError("Invalid token type")

    user_id = payload.get("sub")
    if not user_id:
        raise UnauthorizedError("Invalid token payload")

    user = await db.get(User, user_id)
    if not user:
        raise UnauthorizedError("User not found")

    return user


async def require_admin(user: User = Depends(get_current_user)) -> User:
    if not user.is_admin:
        raise ForbiddenError("Admin access required")
    return user


def get_job_runner() -> JobRunner:
    """Process-wide runner selected by ``settings.job_runner``."""
    global _job_runner
    if _job_runner is None:
        _job_runner = create_job_runner(settings.job_runner)
    return _job_runner
