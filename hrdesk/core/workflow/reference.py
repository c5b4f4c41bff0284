"""Submission reference codes (``REQ-YYYYMMDD-XXXXX``)."""

import secrets
import string
from datetime import date
from typing import Optional

from sqlalchemy.orm import Session

from hrdesk.db.models import RequestSubmission

REFERENCE_PREFIX = "REQ"
REFERENCE_ALPHABET = string.ascii_uppercase + string.digits
REFERENCE_SUFFIX_LENGTH = 5
MAX_ATTEMPTS = 10


def build_reference_code(today: Optional[date] = None) -> str:
    today = today or date.today()
    suffix = "".join(secrets.choice(REFERENCE_ALPHABET) for _ in range(REFERENCE_SUFFIX_LENGTH))
    return f"{REFERENCE_PREFIX}-{today:%Y%m%d}-{suffix}"


def generate_reference_code(db: Session, today: Optional[date] = None) -> str:
    """Return a reference code not used by any stored submission."""
    for _ in range(MAX_ATTEMPTS):
        code = build_reference_code(today)
        exists = db.query(RequestSubmission.id).filter(RequestSubmission.reference_code == code).first()
        if exists is None:
            return code
    raise RuntimeError("Could not generate a unique reference code")
