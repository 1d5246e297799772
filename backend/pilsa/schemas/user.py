"""
Pilsa Backend — Profile & Social Provider Schemas
==================================================

Profile payloads are camelCase (`avatarUrl`, `creditsEarned`). Provider
payloads keep the snake_case keys the client already sends
(`provider_name`, `provider_email`, `linked_at`).
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from pilsa.schemas.common import CamelModel


class Profile(CamelModel):
    """
    What:  The signed-in user's profile as shown on the profile tab.

    church:         primary membership church, else the stored display name, else ""
    credits_earned: lifetime sum over daily_credits.credits_earned
    credits_spent:  lifetime sum over daily_credits.credits_spent
    """

    user_id: uuid.UUID
    email: Optional[str] = None
    name: str = "User"
    avatar_url: Optional[str] = None
    provider: Optional[str] = None
    church: str = ""
    credits_earned: int = 0
    credits_spent: int = 0
    created_at: datetime


class ProfileResponse(BaseModel):
    profile: Profile


class ProfileUpdate(CamelModel):
    """
    Partial profile update.

    Empty `name` / `avatarUrl` leave the stored value untouched. `church` is
    applied whenever it is a string (after trimming), so "" clears it.
    """

    name: Optional[str] = Field(default=None, max_length=100)
    avatar_url: Optional[str] = Field(default=None, max_length=2048)
    church: Optional[str] = Field(default=None, max_length=200)


# ══════════════════════════════════════════════════════════════════════════
# Social login providers
# ══════════════════════════════════════════════════════════════════════════


class ProviderInfo(BaseModel):
    id: str = Field(description="'<userId>-<provider>'")
    provider: str
    email: Optional[str] = None
    name: Optional[str] = None
    linked_at: datetime


class ProviderListResponse(BaseModel):
    providers: List[ProviderInfo]


class ProviderLinkRequest(BaseModel):
    # Optional at the schema level so a missing value gets the 400 wording
    provider: Optional[str] = Field(default=None, max_length=50)
    provider_name: Optional[str] = Field(default=None, max_length=100)
    provider_email: Optional[str] = Field(default=None, max_length=320)


class ProviderLinkResponse(BaseModel):
    status: str = "linked"
    provider: ProviderInfo
