from pydantic import BaseModel, ConfigDict
from uuid import UUID
from datetime import datetime
from typing import Optional, List


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


class RoleSummary(BaseModel):
    id: UUID
    name: str
    label: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)


class UserResponse(BaseModel):
    id: UUID
    email: str
    name: Optional[str]
    position: Optional[str] = None
    is_active: bool
    roles: List[RoleSummary] = []
    permissions: List[str] = []
    created_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)
