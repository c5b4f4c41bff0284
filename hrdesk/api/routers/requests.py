"""Request submission endpoints."""

import csv
import io
import logging
from datetime import date
from typing import Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status, Query, UploadFile, File, Form
from fastapi.responses import FileResponse, StreamingResponse
from sqlalchemy.orm import Session

from hrdesk.api.deps import get_db, get_current_user, get_storage, get_workflow_engine
from hrdesk.api.schemas.common import PaginatedResponse
from hrdesk.api.schemas.requests import (
    SubmissionCreate,
    ApprovalDecision,
    RequestSubmissionResource,
    SubmissionListItem,
    UploadResponse,
)
from hrdesk.core.config import get_settings
from hrdesk.core.rbac import has_permission
from hrdesk.core.workflow import catalog
from hrdesk.core.workflow.engine import WorkflowEngine
from hrdesk.core.workflow.errors import ValidationError
from hrdesk.db.models import RequestSubmission, User
from hrdesk.services.storage import LocalFileStorage

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/requests", tags=["requests"])
settings = get_settings()

EXPORT_PAGE_SIZE = 500
EXPORT_COLUMNS = ["Reference Code", "Request Type", "Status", "Submitted At", "Requester", "Email", "Fulfilled At"]


def _get_or_404(db: Session, submission_id: UUID) -> RequestSubmission:
    submission = db.get(RequestSubmission, submission_id)
    if not submission:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request not found")
    return submission


def _authorize_view(engine: WorkflowEngine, submission: RequestSubmission, user: User) -> None:
    if not engine.can_view(submission, user):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="You are not allowed to view this request")


def _check_uploaded_files(storage: LocalFileStorage, user: User, answers: dict) -> None:
    """File answers must point at an upload of the submitting user."""
    errors = {}
    for key, value in answers.items():
        if not isinstance(value, dict) or "key" not in value:
            continue
        file_key = str(value.get("key") or "")
        if not file_key.startswith(f"uploads/{user.id}/") or not storage.exists(file_key):
            errors[key] = "The uploaded file could not be found. Please upload it again."
    if errors:
        raise ValidationError(errors=errors)


def _list_item(submission: RequestSubmission) -> SubmissionListItem:
    requester = submission.requester
    return SubmissionListItem(
        id=str(submission.id),
        reference_code=submission.reference_code,
        status=submission.status,
        request_type=submission.request_type.name,
        requester=requester.display_name if requester else None,
        current_step_index=submission.current_step_index,
        submitted_at=submission.submitted_at.isoformat() if submission.submitted_at else None,
        fulfilled_at=submission.fulfilled_at.isoformat() if submission.fulfilled_at else None,
    )


@router.post("", response_model=RequestSubmissionResource, status_code=status.HTTP_201_CREATED)
def create_submission(
    body: SubmissionCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    storage: LocalFileStorage = Depends(get_storage),
):
    """Submit a request of a published request type."""
    request_type = catalog.get_request_type(db, body.request_type_id)
    if not request_type:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request type not found")

    _check_uploaded_files(storage, current_user, body.answers)
    submission = engine.submit(request_type, current_user, body.answers)
    return engine.view(submission)


@router.get("", response_model=PaginatedResponse[SubmissionListItem])
def list_submissions(
    current_user: User = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    scope: str = Query("mine", pattern="^(mine|approvals|all)$"),
    status_filter: Optional[str] = Query(None, alias="status"),
    request_type_id: Optional[UUID] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
    page: int = Query(1, ge=1),
    per_page: int = Query(20, ge=1, le=100),
):
    """
    List submissions.

    ``mine`` lists own requests, ``approvals`` the ones waiting on the current
    user, ``all`` every request (requires ``requests:list``).
    """
    items, total = engine.list_submissions(
        current_user,
        scope,
        status=status_filter,
        request_type_id=request_type_id,
        search=search,
        date_from=date_from,
        date_to=date_to,
        page=page,
        per_page=per_page,
    )

    return PaginatedResponse.create([_list_item(s) for s in items], total, page, per_page)


@router.get("/export")
def export_submissions(
    current_user: User = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    scope: str = Query("mine", pattern="^(mine|approvals|all)$"),
    status_filter: Optional[str] = Query(None, alias="status"),
    request_type_id: Optional[UUID] = None,
    search: Optional[str] = None,
    date_from: Optional[date] = None,
    date_to: Optional[date] = None,
):
    """Export the filtered submissions as CSV."""
    if scope == "all" and not has_permission(current_user, "requests:export"):
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail="Insufficient permissions. Required: requests:export")

    items = []
    page = 1
    while True:
        batch, total = engine.list_submissions(
            current_user,
            scope,
            status=status_filter,
            request_type_id=request_type_id,
            search=search,
            date_from=date_from,
            date_to=date_to,
            page=page,
            per_page=EXPORT_PAGE_SIZE,
        )
        items.extend(batch)
        if not batch or len(items) >= total:
            break
        page += 1

    buffer = io.StringIO()
    writer = csv.writer(buffer)
    writer.writerow(EXPORT_COLUMNS)
    for submission in items:
        requester = submission.requester
        writer.writerow([
            submission.reference_code,
            submission.request_type.name,
            submission.status,
            submission.submitted_at.isoformat() if submission.submitted_at else "",
            requester.display_name if requester else "",
            requester.email if requester else "",
            submission.fulfilled_at.isoformat() if submission.fulfilled_at else "",
        ])

    logger.info(f"{current_user.email} exported {total} request(s) (scope={scope})")
    filename = f"requests-{date.today():%Y%m%d}.csv"
    return StreamingResponse(
        iter([buffer.getvalue()]),
        media_type="text/csv",
        headers={"Content-Disposition": f'attachment; filename="{filename}"'},
    )


@router.post("/uploads", response_model=UploadResponse, status_code=status.HTTP_201_CREATED)
def upload_attachment(
    file: UploadFile = File(...),
    current_user: User = Depends(get_current_user),
    storage: LocalFileStorage = Depends(get_storage),
):
    """Store a file answer ahead of submission and return its reference."""
    stored = storage.save(file, prefix=f"uploads/{current_user.id}", max_bytes=settings.max_attachment_bytes)
    return UploadResponse(
        key=stored.key,
        url=stored.url,
        original_name=stored.original_filename,
        mime_type=stored.content_type,
        size=stored.size_bytes,
    )


@router.get("/{submission_id}", response_model=RequestSubmissionResource)
def get_submission(
    submission_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    submission = _get_or_404(db, submission_id)
    _authorize_view(engine, submission, current_user)
    return engine.view(submission)


@router.post("/{submission_id}/actions", response_model=RequestSubmissionResource)
def act_on_submission(
    submission_id: UUID,
    body: ApprovalDecision,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Approve or reject the current step."""
    submission = _get_or_404(db, submission_id)
    submission = engine.act(submission, body.step_index, current_user, body.decision, body.notes)
    return engine.view(submission)


@router.post("/{submission_id}/fulfill", response_model=RequestSubmissionResource)
def fulfill_submission(
    submission_id: UUID,
    file: UploadFile = File(...),
    notes: Optional[str] = Form(None),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_workflow_engine),
):
    """Upload the fulfillment document and complete the request."""
    submission = _get_or_404(db, submission_id)
    submission = engine.fulfill(submission, current_user, file, notes)
    return engine.view(submission)


@router.get("/{submission_id}/fulfillment/download")
def download_fulfillment(
    submission_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    storage: LocalFileStorage = Depends(get_storage),
):
    submission = _get_or_404(db, submission_id)
    fulfillment = submission.fulfillment
    if fulfillment is None or not fulfillment.file_key:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No fulfillment file")
    _authorize_view(engine, submission, current_user)

    if not storage.exists(fulfillment.file_key):
        logger.error(f"Fulfillment file {fulfillment.file_key} of {submission.reference_code} is missing")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    return FileResponse(
        storage.path(fulfillment.file_key),
        media_type=fulfillment.content_type or "application/octet-stream",
        filename=fulfillment.original_filename or fulfillment.file_key.rsplit("/", 1)[-1],
    )


@router.get("/{submission_id}/fields/{field_id}/download")
def download_field_file(
    submission_id: UUID,
    field_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    storage: LocalFileStorage = Depends(get_storage),
):
    """Download a file attached to a submission answer."""
    submission = _get_or_404(db, submission_id)
    _authorize_view(engine, submission, current_user)

    answer = next((a for a in submission.answers if a.field_id == field_id), None)
    if answer is None or answer.field.field_type != "file" or not answer.value:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No file for this field")
    if not storage.exists(answer.value):
        logger.error(f"Attachment {answer.value} of {submission.reference_code} is missing")
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    meta = answer.value_json if isinstance(answer.value_json, dict) else {}
    return FileResponse(
        storage.path(answer.value),
        media_type=meta.get("mime_type") or "application/octet-stream",
        filename=meta.get("original_name") or answer.value.rsplit("/", 1)[-1],
    )


@router.get("/{submission_id}/document/download")
def download_document(
    submission_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    engine: WorkflowEngine = Depends(get_workflow_engine),
    storage: LocalFileStorage = Depends(get_storage),
):
    """Download the document generated from the request type's template."""
    submission = _get_or_404(db, submission_id)
    if not submission.document_path:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No generated document")
    _authorize_view(engine, submission, current_user)

    if not storage.exists(submission.document_path):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="File not found")

    return FileResponse(
        storage.path(submission.document_path),
        media_type="text/plain",
        filename=submission.document_path.rsplit("/", 1)[-1],
    )
