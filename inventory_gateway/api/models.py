"""Request models for the HTTP API.

Fields are optional so that missing values reach the services, which report
them as ``ValidationError`` (400) with a specific message.
"""

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class LoginRequest(BaseModel):
    """Local credential login."""

    username: str | None = Field(default=None, max_length=255)
    password: str | None = Field(default=None, max_length=1024)


class ApproveUserRequest(BaseModel):
    """Approve or reject a pending account."""

    model_config = ConfigDict(populate_by_name=True)

    user_id: str | None = Field(default=None, alias="userId")
    rol: str | None = None
    action: Literal["approve", "reject"] | None = None
