"""
Pilsa Backend — Church & Membership Schemas
============================================

Registration accepts exactly one way of naming the church:
    {"churchId": "<uuid>"}                 join an existing church
    {"churchCode": "AB12CD"}               join by invite code
    {"manualChurch": {"name": ..., ...}}   register a church not yet listed
The service checks which one was supplied, in that order of precedence.
"""

import uuid
from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, Field

from pilsa.schemas.common import CamelModel


class ChurchOut(CamelModel):
    id: uuid.UUID
    church_code: Optional[str] = None
    name: str
    address: str
    city: str
    district: Optional[str] = None
    phone: Optional[str] = None
    member_count: int = 0
    pastor: Optional[str] = None
    denomination: Optional[str] = None


class ChurchListResponse(BaseModel):
    churches: List[ChurchOut]


class MembershipOut(CamelModel):
    id: uuid.UUID
    is_primary: bool
    status: str
    joined_at: datetime
    church: Optional[ChurchOut] = None


class MembershipListResponse(BaseModel):
    memberships: List[MembershipOut]


class MembershipResponse(BaseModel):
    membership: MembershipOut


class ManualChurch(CamelModel):
    """A church typed in by the user. `name` and `address` are required by the service."""

    name: Optional[str] = Field(default=None, max_length=200)
    address: Optional[str] = Field(default=None, max_length=500)
    city: Optional[str] = Field(default=None, max_length=50)
    district: Optional[str] = Field(default=None, max_length=50)
    phone: Optional[str] = Field(default=None, max_length=50)
    pastor: Optional[str] = Field(default=None, max_length=100)
    denomination: Optional[str] = Field(default=None, max_length=100)


class MembershipCreate(CamelModel):
    church_id: Optional[uuid.UUID] = None
    church_code: Optional[str] = Field(default=None, max_length=20)
    manual_church: Optional[ManualChurch] = None
