"""Request type catalog.

Creates, edits, publishes and removes request type definitions. A version
that submissions already reference is never modified: editing it creates the
next version of the same family and supersedes the old row, so in-flight
submissions keep the definition they were created under.
"""

import logging
import uuid
from typing import Any, Optional
from uuid import UUID

from slugify import slugify
from sqlalchemy.orm import Session

from hrdesk.db.base import utcnow
from hrdesk.db.models import RequestType, RequestField, RequestSubmission, Role, User

from .errors import ValidationError, InvalidStateError
from .fields import FIELD_TYPES, CHOICE_FIELD_TYPES
from .states import ApproverType

logger = logging.getLogger(__name__)

REQUEST_TYPE_KINDS = ("generic", "leave", "certificate")


def _as_uuid(value: Any) -> Optional[UUID]:
    if value is None or value == "":
        return None
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        return None


def make_unique_key(base: str, reserved: list[str]) -> str:
    """Slugify ``base`` and suffix it (``_2``, ``_3`` ...) until it is not reserved."""
    base = slugify(base or "", separator="_") or "field"
    candidate = base
    suffix = 2
    while candidate in reserved:
        candidate = f"{base}_{suffix}"
        suffix += 1
    reserved.append(candidate)
    return candidate


def determine_field_key(field: dict, reserved: list[str], current_key: Optional[str] = None) -> str:
    provided = str(field.get("field_key") or "").strip()

    if current_key and provided in ("", current_key) and current_key not in reserved:
        reserved.append(current_key)
        return current_key

    if provided:
        return make_unique_key(provided, reserved)

    return make_unique_key(field.get("label") or "field", reserved)


def validate_definition(db: Session, data: dict) -> None:
    """
    Check a request type payload.

    Raises:
        ValidationError: errors keyed by dotted path (``fields.0.options``)
    """
    errors: dict[str, str] = {}

    name = data.get("name")
    if not isinstance(name, str) or not name.strip():
        errors["name"] = "The name field is required."
    elif len(name) > 255:
        errors["name"] = "The name may not be greater than 255 characters."

    kind = data.get("kind") or "generic"
    if kind not in REQUEST_TYPE_KINDS:
        errors["kind"] = f"The kind must be one of: {', '.join(REQUEST_TYPE_KINDS)}."

    fields = data.get("fields") or []
    if not fields:
        errors["fields"] = "At least one field is required."

    for index, field in enumerate(fields):
        label = field.get("label")
        if not isinstance(label, str) or not label.strip():
            errors[f"fields.{index}.label"] = "The label field is required."
        field_type = field.get("field_type")
        if field_type not in FIELD_TYPES:
            errors[f"fields.{index}.field_type"] = "The selected field type is invalid."
        options = field.get("options") or []
        if field_type in CHOICE_FIELD_TYPES and not options:
            errors[f"fields.{index}.options"] = "Options are required for selection-based fields."
        for opt_index, option in enumerate(options):
            if not isinstance(option, dict) or not option.get("label") or option.get("value") in (None, ""):
                errors[f"fields.{index}.options.{opt_index}"] = "Each option needs a label and a value."

    seen_orders: set[int] = set()
    for index, step in enumerate(data.get("approval_steps") or []):
        if not step.get("name"):
            errors[f"approval_steps.{index}.name"] = "The step name is required."

        sort_order = step.get("sort_order")
        if sort_order is not None:
            if sort_order in seen_orders:
                errors[f"approval_steps.{index}.sort_order"] = "Step order must be unique."
            seen_orders.add(sort_order)

        approvers = step.get("approvers") or []
        if not approvers:
            errors[f"approval_steps.{index}.approvers"] = "Add at least one approver."
            continue

        for a_index, approver in enumerate(approvers):
            prefix = f"approval_steps.{index}.approvers.{a_index}"
            approver_type = approver.get("approver_type")
            if approver_type == ApproverType.USER.value:
                user_id = _as_uuid(approver.get("approver_id"))
                if user_id is None or db.get(User, user_id) is None:
                    errors[f"{prefix}.approver_id"] = "Select a user."
            elif approver_type == ApproverType.ROLE.value:
                role_id = _as_uuid(approver.get("approver_role_id"))
                if role_id is None or db.get(Role, role_id) is None:
                    errors[f"{prefix}.approver_role_id"] = "Select a role."
            else:
                errors[f"{prefix}.approver_type"] = "The selected approver type is invalid."

    if errors:
        raise ValidationError(errors=errors)


def normalize_approval_steps(steps: list[dict]) -> list[dict]:
    """Order steps, assign ids and renumber ``sort_order`` from zero."""
    indexed = list(enumerate(steps or []))
    indexed.sort(key=lambda pair: (pair[1].get("sort_order") if pair[1].get("sort_order") is not None else pair[0], pair[0]))

    normalized = []
    for position, (_, step) in enumerate(indexed):
        approvers = []
        for approver in step.get("approvers") or []:
            approver_type = approver.get("approver_type")
            approver_id = _as_uuid(approver.get("approver_id")) if approver_type == ApproverType.USER.value else None
            role_id = _as_uuid(approver.get("approver_role_id")) if approver_type == ApproverType.ROLE.value else None
            if approver_id is None and role_id is None:
                continue
            approvers.append({
                "id": str(approver.get("id") or uuid.uuid4()),
                "approver_type": approver_type,
                "approver_id": str(approver_id) if approver_id else None,
                "approver_role_id": str(role_id) if role_id else None,
            })
        normalized.append({
            "id": str(step.get("id") or uuid.uuid4()),
            "name": step.get("name"),
            "description": step.get("description"),
            "sort_order": position,
            "approvers": approvers,
        })
    return normalized


def _field_payload(field: dict, index: int) -> dict:
    return {
        "label": field["label"].strip(),
        "field_type": field["field_type"],
        "is_required": bool(field.get("is_required", False)),
        "description": field.get("description"),
        "options": field.get("options") or None,
        "sort_order": field.get("sort_order") if field.get("sort_order") is not None else index,
    }


def _build_fields(fields: list[dict], carried_keys: Optional[dict[str, str]] = None) -> list[RequestField]:
    """New field rows; ``carried_keys`` maps an old field id to the key it should keep."""
    carried_keys = carried_keys or {}
    reserved: list[str] = []
    rows = []
    for index, field in enumerate(fields):
        current_key = carried_keys.get(str(field.get("id"))) if field.get("id") else None
        key = determine_field_key(field, reserved, current_key)
        rows.append(RequestField(field_key=key, **_field_payload(field, index)))
    return rows


def _has_submissions(db: Session, request_type: RequestType) -> bool:
    row = db.query(RequestSubmission.id).filter(RequestSubmission.request_type_id == request_type.id).first()
    return row is not None


def create_request_type(db: Session, data: dict, created_by: Optional[User] = None) -> RequestType:
    """Validate and add a new request type (version 1 of a new family)."""
    validate_definition(db, data)

    is_published = bool(data.get("is_published", False))
    request_type = RequestType(
        family_id=uuid.uuid4(),
        version=1,
        name=data["name"].strip(),
        description=data.get("description"),
        kind=data.get("kind") or "generic",
        has_fulfillment=bool(data.get("has_fulfillment", False)),
        approval_steps=normalize_approval_steps(data.get("approval_steps") or []),
        document_template=data.get("document_template"),
        is_published=is_published,
        published_at=utcnow() if is_published else None,
        created_by=created_by.id if created_by else None,
    )
    request_type.fields = _build_fields(data["fields"])
    db.add(request_type)
    db.flush()

    logger.info(f"Created request type {request_type.name} ({request_type.id})")
    return request_type


def _apply_in_place(db: Session, request_type: RequestType, data: dict) -> RequestType:
    existing = {str(f.id): f for f in request_type.fields}
    reserved: list[str] = []
    keep: list[RequestField] = []

    for index, field in enumerate(data["fields"]):
        current = existing.get(str(field.get("id"))) if field.get("id") else None
        key = determine_field_key(field, reserved, current.field_key if current else None)
        payload = _field_payload(field, index)
        if current is not None:
            current.field_key = key
            for attr, value in payload.items():
                setattr(current, attr, value)
            keep.append(current)
        else:
            keep.append(RequestField(field_key=key, **payload))

    # Dropped fields are deleted through delete-orphan
    request_type.fields = keep

    request_type.name = data["name"].strip()
    request_type.description = data.get("description")
    request_type.kind = data.get("kind") or request_type.kind
    request_type.has_fulfillment = bool(data.get("has_fulfillment", request_type.has_fulfillment))
    request_type.approval_steps = normalize_approval_steps(data.get("approval_steps") or [])
    request_type.document_template = data.get("document_template")
    if data.get("is_published") is not None:
        _set_published(request_type, bool(data["is_published"]))

    db.flush()
    logger.info(f"Updated request type {request_type.name} v{request_type.version} in place")
    return request_type


def _create_next_version(db: Session, request_type: RequestType, data: dict) -> RequestType:
    carried = {str(f.id): f.field_key for f in request_type.fields}
    is_published = request_type.is_published
    if data.get("is_published") is not None:
        is_published = bool(data["is_published"])

    successor = RequestType(
        family_id=request_type.family_id,
        version=request_type.version + 1,
        name=data["name"].strip(),
        description=data.get("description"),
        kind=data.get("kind") or request_type.kind,
        has_fulfillment=bool(data.get("has_fulfillment", request_type.has_fulfillment)),
        approval_steps=normalize_approval_steps(data.get("approval_steps") or []),
        document_template=data.get("document_template"),
        is_published=is_published,
        published_at=(request_type.published_at or utcnow()) if is_published else None,
        created_by=request_type.created_by,
    )
    successor.fields = _build_fields(data["fields"], carried)
    db.add(successor)
    db.flush()

    request_type.superseded_by_id = successor.id
    request_type.is_published = False
    db.flush()

    logger.info(
        f"Request type {request_type.name} superseded: v{request_type.version} -> v{successor.version}"
    )
    return successor


def update_request_type(db: Session, request_type: RequestType, data: dict) -> RequestType:
    """
    Apply an edit to a request type.

    Returns the row now holding the definition: the same row when no
    submission references it yet, otherwise the newly created version.

    Raises:
        InvalidStateError: if the given version has already been superseded
        ValidationError: if the payload is invalid
    """
    if not request_type.is_current:
        raise InvalidStateError("superseded", "update", "Only the current version of a request type can be edited.")

    validate_definition(db, data)

    if _has_submissions(db, request_type):
        return _create_next_version(db, request_type, data)
    return _apply_in_place(db, request_type, data)


def _set_published(request_type: RequestType, published: bool) -> None:
    request_type.is_published = published
    if published:
        request_type.published_at = request_type.published_at or utcnow()
    else:
        request_type.published_at = None


def publish_request_type(db: Session, request_type: RequestType) -> RequestType:
    if not request_type.is_current:
        raise InvalidStateError("superseded", "publish", "A superseded version cannot be published.")
    _set_published(request_type, True)
    db.flush()
    logger.info(f"Published request type {request_type.name}")
    return request_type


def unpublish_request_type(db: Session, request_type: RequestType) -> RequestType:
    _set_published(request_type, False)
    db.flush()
    logger.info(f"Unpublished request type {request_type.name}")
    return request_type


def delete_request_type(db: Session, request_type: RequestType) -> None:
    """
    Delete every version of the request type's family.

    Raises:
        InvalidStateError: if any version has submissions
    """
    versions = db.query(RequestType).filter(RequestType.family_id == request_type.family_id).all()
    for version in versions:
        if _has_submissions(db, version):
            raise InvalidStateError(
                "in_use", "delete", "Request types with submissions cannot be deleted; unpublish it instead."
            )

    for version in versions:
        version.superseded_by_id = None
    db.flush()
    for version in versions:
        db.delete(version)
    db.flush()
    logger.info(f"Deleted request type {request_type.name} ({len(versions)} version(s))")


def get_request_type(db: Session, request_type_id: UUID) -> Optional[RequestType]:
    return db.get(RequestType, request_type_id)


def list_request_types(db: Session, *, published_only: bool = False, kind: Optional[str] = None) -> list[RequestType]:
    """Current (non-superseded) versions, ordered by name."""
    query = db.query(RequestType).filter(RequestType.superseded_by_id.is_(None))
    if published_only:
        query = query.filter(RequestType.is_published.is_(True))
    if kind:
        query = query.filter(RequestType.kind == kind)
    return query.order_by(RequestType.name).all()
