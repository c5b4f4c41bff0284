"""Document generation from request type templates.

Request types may carry a Jinja2 ``document_template`` (a certificate, a
leave form ...). Once a submission clears its approval chain the template is
rendered with the submission's answers and stored next to the other files.
"""

import logging
from datetime import date
from typing import Any, Dict, Optional

from jinja2 import TemplateError, StrictUndefined
from jinja2.sandbox import SandboxedEnvironment
from slugify import slugify

from hrdesk.db.models import RequestSubmission
from hrdesk.services.storage import LocalFileStorage, StoredFile

logger = logging.getLogger(__name__)

_env = SandboxedEnvironment(autoescape=False, undefined=StrictUndefined)


def check_template(source: str) -> Optional[str]:
    """Return a syntax error message, or None when the template parses."""
    try:
        _env.parse(source)
    except TemplateError as e:
        return str(e)
    return None


def build_document_context(submission: RequestSubmission) -> Dict[str, Any]:
    answers = {}
    for key, answer in submission.answer_map().items():
        value = answer.value
        if answer.field.field_type in ("dropdown", "radio") and isinstance(answer.value_json, dict):
            value = answer.value_json.get("label", value)
        answers[key] = value

    requester = submission.requester
    return {
        "answers": answers,
        "reference_code": submission.reference_code,
        "request_type": submission.request_type.name,
        "requester": {
            "name": requester.display_name if requester else "",
            "email": requester.email if requester else "",
            "position": (requester.position or "") if requester else "",
        },
        "submitted_at": submission.submitted_at,
        "approvals": [
            {
                "step_name": action.step_name,
                "status": action.status,
                "approver": action.acted_by.display_name if action.acted_by else None,
                "acted_at": action.acted_at,
            }
            for action in submission.approval_actions
        ],
        "today": date.today(),
    }


class DocumentService:
    """Renders and stores the generated document of a submission."""

    def __init__(self, storage: LocalFileStorage):
        self.storage = storage

    def render(self, submission: RequestSubmission) -> str:
        template = _env.from_string(submission.request_type.document_template)
        return template.render(**build_document_context(submission))

    def generate(self, submission: RequestSubmission) -> Optional[StoredFile]:
        """Render and store the document. Returns None when the type has no template."""
        if not submission.request_type.document_template:
            return None

        content = self.render(submission)
        filename = f"{slugify(submission.request_type.name) or 'document'}-{submission.reference_code}.txt"
        stored = self.storage.save_bytes(
            content.encode("utf-8"),
            filename,
            content_type="text/plain; charset=utf-8",
            prefix=f"documents/{submission.id}",
        )
        logger.info(f"Generated document for {submission.reference_code}: {stored.key}")
        return stored
