from datetime import datetime

from pydantic import BaseModel, Field


class AdminUserResponse(BaseModel):
    id: str
    email: str
    display_name: str
    photo_url: str | None
    credits: int
    is_admin: bool
    is_new_user: bool
    created_at: datetime
    last_login_at: datetime | None

    model_config = {"from_attributes": True}


class AdminUserListResponse(BaseModel):
    users: list[AdminUserResponse]
    count: int


class AddCreditsRequest(BaseModel):
    amount: int = Field(gt=0, le=1_000_000)
    reason: str | None = Field(None, max_length=500)


class AddCreditsResponse(BaseModel):
    uid: str
    amount: int
    credits: int
    reason: str
    message: str
