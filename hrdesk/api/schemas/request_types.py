"""Request type payloads and responses."""

from datetime import datetime
from typing import List, Optional, Literal
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field

FieldType = Literal["text", "number", "date", "textarea", "checkbox", "dropdown", "radio", "file"]


class FieldOption(BaseModel):
    label: str = Field(..., max_length=255)
    value: str = Field(..., max_length=255)


class FieldDefinition(BaseModel):
    id: Optional[UUID] = None  # existing field to keep (and keep its key)
    field_key: Optional[str] = Field(None, max_length=255)
    label: str = Field(..., max_length=255)
    field_type: FieldType
    is_required: bool = False
    description: Optional[str] = None
    options: Optional[List[FieldOption]] = None
    sort_order: Optional[int] = Field(None, ge=0)


class ApproverDefinition(BaseModel):
    id: Optional[str] = None
    approver_type: Literal["user", "role"]
    approver_id: Optional[UUID] = None
    approver_role_id: Optional[UUID] = None


class StepDefinition(BaseModel):
    id: Optional[str] = None
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    sort_order: Optional[int] = Field(None, ge=0)
    approvers: List[ApproverDefinition] = []


class RequestTypeCreate(BaseModel):
    name: str = Field(..., max_length=255)
    description: Optional[str] = None
    kind: Literal["generic", "leave", "certificate"] = "generic"
    has_fulfillment: bool = False
    is_published: Optional[bool] = None
    document_template: Optional[str] = None
    fields: List[FieldDefinition]
    approval_steps: List[StepDefinition] = []


class RequestTypeUpdate(RequestTypeCreate):
    pass


class FieldResponse(BaseModel):
    id: UUID
    field_key: str
    label: str
    field_type: str
    is_required: bool
    description: Optional[str]
    options: Optional[list]
    sort_order: int

    model_config = ConfigDict(from_attributes=True)


class RequestTypeResponse(BaseModel):
    id: UUID
    family_id: UUID
    version: int
    superseded_by_id: Optional[UUID]
    name: str
    description: Optional[str]
    kind: str
    has_fulfillment: bool
    approval_steps: list
    document_template: Optional[str]
    is_published: bool
    published_at: Optional[datetime]
    created_at: Optional[datetime]
    updated_at: Optional[datetime]
    fields: List[FieldResponse] = []

    model_config = ConfigDict(from_attributes=True)
