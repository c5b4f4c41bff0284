"""Request type catalog endpoints."""

from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session

from hrdesk.api.deps import get_db, get_current_user
from hrdesk.api.schemas.request_types import RequestTypeCreate, RequestTypeUpdate, RequestTypeResponse
from hrdesk.core.rbac import require_permission, has_permission
from hrdesk.core.workflow import catalog
from hrdesk.core.workflow.errors import ValidationError
from hrdesk.db.models import RequestType, User
from hrdesk.services.documents import check_template

router = APIRouter(prefix="/request-types", tags=["request-types"])


def _get_or_404(db: Session, request_type_id: UUID) -> RequestType:
    request_type = catalog.get_request_type(db, request_type_id)
    if not request_type:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request type not found")
    return request_type


def _payload(body: RequestTypeCreate) -> dict:
    data = body.model_dump()
    if data.get("document_template"):
        error = check_template(data["document_template"])
        if error:
            raise ValidationError(errors={"document_template": f"Invalid template: {error}"})
    return data


@router.get("", response_model=List[RequestTypeResponse])
def list_request_types(
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    kind: Optional[str] = None,
    include_unpublished: bool = Query(False),
):
    """
    List current request types.

    Users who can manage the catalog may include unpublished types; everyone
    else only sees published ones.
    """
    published_only = not (include_unpublished and has_permission(current_user, "request_types:update"))
    return catalog.list_request_types(db, published_only=published_only, kind=kind)


@router.get("/{request_type_id}", response_model=RequestTypeResponse)
def get_request_type(
    request_type_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    request_type = _get_or_404(db, request_type_id)
    if not request_type.is_published and not has_permission(current_user, "request_types:update"):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Request type not found")
    return request_type


@router.post("", response_model=RequestTypeResponse, status_code=status.HTTP_201_CREATED)
@require_permission("request_types:create")
def create_request_type(
    body: RequestTypeCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    request_type = catalog.create_request_type(db, _payload(body), created_by=current_user)
    db.commit()
    return request_type


@router.put("/{request_type_id}", response_model=RequestTypeResponse)
@require_permission("request_types:update")
def update_request_type(
    request_type_id: UUID,
    body: RequestTypeUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """
    Update a request type.

    Returns the row now holding the definition, which is a new version when
    the edited one already has submissions.
    """
    request_type = _get_or_404(db, request_type_id)
    updated = catalog.update_request_type(db, request_type, _payload(body))
    db.commit()
    return updated


@router.post("/{request_type_id}/publish", response_model=RequestTypeResponse)
@require_permission("request_types:publish")
def publish_request_type(
    request_type_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    request_type = catalog.publish_request_type(db, _get_or_404(db, request_type_id))
    db.commit()
    return request_type


@router.post("/{request_type_id}/unpublish", response_model=RequestTypeResponse)
@require_permission("request_types:publish")
def unpublish_request_type(
    request_type_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    request_type = catalog.unpublish_request_type(db, _get_or_404(db, request_type_id))
    db.commit()
    return request_type


@router.delete("/{request_type_id}", status_code=status.HTTP_204_NO_CONTENT)
@require_permission("request_types:delete")
def delete_request_type(
    request_type_id: UUID,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    catalog.delete_request_type(db, _get_or_404(db, request_type_id))
    db.commit()
