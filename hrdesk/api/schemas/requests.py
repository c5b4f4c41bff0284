"""Request submission payloads and the submission resource."""

from typing import Any, Dict, List, Optional, Literal

from pydantic import BaseModel, Field, ValidationInfo, field_validator
from uuid import UUID


class SubmissionCreate(BaseModel):
    request_type_id: UUID
    answers: Dict[str, Any] = {}


class ApprovalDecision(BaseModel):
    step_index: int = Field(..., ge=0)
    decision: Literal["approved", "rejected"]
    notes: Optional[str] = Field(None, max_length=2000, validate_default=True)

    @field_validator("notes")
    @classmethod
    def notes_required_for_rejection(cls, notes: Optional[str], info: ValidationInfo):
        if info.data.get("decision") == "rejected" and not (notes or "").strip():
            raise ValueError("Notes are required when rejecting a request.")
        return notes


class RequestTypeSummary(BaseModel):
    id: str
    name: str
    kind: str
    has_fulfillment: bool
    version: int


class RequesterSummary(BaseModel):
    id: str
    full_name: str
    email: str
    position: Optional[str] = None


class UserSummary(BaseModel):
    id: str
    name: str
    email: str


class ApproverDetail(UserSummary):
    position: Optional[str] = None


class RoleSummary(BaseModel):
    id: str
    name: str
    label: str


class FieldAnswer(BaseModel):
    id: str
    field_key: str
    label: str
    field_type: str
    description: Optional[str] = None
    value: Any = None
    value_json: Any = None
    download_url: Optional[str] = None


class ApprovalActionResource(BaseModel):
    id: str
    step_index: int
    step_name: Optional[str] = None
    status: str
    notes: Optional[str] = None
    acted_at: Optional[str] = None
    approver: Optional[ApproverDetail] = None
    approver_name: Optional[str] = None
    approver_users: List[UserSummary] = []
    approver_roles: List[RoleSummary] = []


class ApprovalResource(BaseModel):
    current_step_index: Optional[int] = None
    actions: List[ApprovalActionResource] = []


class HistoryEntry(BaseModel):
    from_status: Optional[str] = None
    to_status: str
    transition: str
    user_id: Optional[str] = None
    comment: Optional[str] = None
    created_at: Optional[str] = None


class FulfillmentResource(BaseModel):
    file_url: Optional[str] = None
    download_url: Optional[str] = None
    original_filename: Optional[str] = None
    notes: Optional[str] = None
    completed_at: Optional[str] = None
    fulfilled_by: Optional[UserSummary] = None


class RequestSubmissionResource(BaseModel):
    id: str
    reference_code: str
    status: str
    submitted_at: Optional[str] = None
    fulfilled_at: Optional[str] = None
    request_type: RequestTypeSummary
    requester: Optional[RequesterSummary] = None
    fields: List[FieldAnswer] = []
    approval: ApprovalResource
    history: List[HistoryEntry] = []
    fulfillment: Optional[FulfillmentResource] = None
    document_url: Optional[str] = None


class SubmissionListItem(BaseModel):
    id: str
    reference_code: str
    status: str
    request_type: str
    requester: Optional[str] = None
    current_step_index: Optional[int] = None
    submitted_at: Optional[str] = None
    fulfilled_at: Optional[str] = None


class UploadResponse(BaseModel):
    key: str
    url: str
    original_name: str
    mime_type: Optional[str] = None
    size: int
