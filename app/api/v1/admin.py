"""Admin endpoints: account listing and credit grants."""

import logging

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.dependencies import require_admin
from app.db.postgres import get_db
from app.models.user import User
from app.schemas.admin import AddCreditsRequest, AddCreditsResponse, AdminUserListResponse, AdminUserResponse
from app.services import credit_service

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/admin", tags=["admin"])

DEFAULT_CREDIT_REASON = "Admin credit adjustment"


@router.get("/users", response_model=AdminUserListResponse)
async def list_users(
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    users = await credit_service.list_users(db)
    return AdminUserListResponse(
        users=[AdminUserResponse.model_validate(u) for u in users],
        count=len(users),
    )


@router.post("/users/{uid}/credits", response_model=AddCreditsResponse)
async def add_user_credits(
    uid: str,
    body: AddCreditsRequest,
    admin: User = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    reason = body.reason or DEFAULT_CREDIT_REASON
    balance = await credit_service.add_credits(db, uid, body.amount)
    logger.info("Admin %s added %d credits to %s: %s", admin.id, body.amount, uid, reason)
    return AddCreditsResponse(
        uid=uid,
        amount=body.amount,
        credits=balance,
        reason=reason,
        message=f"Added {body.amount} credits",
    )
