"""Tests for answer validation."""

from datetime import date

import pytest

from hrdesk.core.workflow.errors import ValidationError
from hrdesk.core.workflow.fields import (
    is_blank, parse_bool, parse_date, validate_field, validate_answers,
)
from hrdesk.db.models import RequestField


def make_field(field_type="text", label="Field", key=None, required=False, options=None):
    return RequestField(
        field_key=key or label.lower().replace(" ", "_"),
        label=label,
        field_type=field_type,
        is_required=required,
        options=options,
    )


OPTIONS = [{"label": "Vacation", "value": "VL"}, {"label": "Sick", "value": "SL"}]


class TestHelpers:

    @pytest.mark.parametrize("value", [None, "", "   ", [], {}])
    def test_blank_values(self, value):
        assert is_blank(value)

    @pytest.mark.parametrize("value", [0, False, "0", "x"])
    def test_non_blank_values(self, value):
        assert not is_blank(value)

    def test_parse_bool(self):
        assert parse_bool("Yes") is True
        assert parse_bool("off") is False
        assert parse_bool(1) is True
        assert parse_bool("maybe") is None
        assert parse_bool(2) is None

    def test_parse_date(self):
        assert parse_date("2026-03-02") == date(2026, 3, 2)
        assert parse_date("2026-03-02T10:00:00") == date(2026, 3, 2)
        assert parse_date("02/03/2026") is None
        assert parse_date(20260302) is None


class TestValidateField:

    def test_required_text(self):
        with pytest.raises(ValueError, match="The Reason field is required."):
            validate_field(make_field(label="Reason", required=True), "  ")

    def test_optional_blank_stores_none(self):
        answer = validate_field(make_field(), None)
        assert answer.value is None

    def test_text_must_be_string(self):
        with pytest.raises(ValueError, match="must be a string"):
            validate_field(make_field(label="Reason"), 42)

    def test_number(self):
        assert validate_field(make_field("number"), "12.5").value == "12.5"
        assert validate_field(make_field("number"), 3).value == "3"
        with pytest.raises(ValueError, match="must be a number"):
            validate_field(make_field("number"), "twelve")
        with pytest.raises(ValueError, match="must be a number"):
            validate_field(make_field("number"), "NaN")
        with pytest.raises(ValueError, match="must be a number"):
            validate_field(make_field("number"), True)

    def test_date(self):
        assert validate_field(make_field("date"), "2026-01-15").value == "2026-01-15"
        with pytest.raises(ValueError, match="must be a valid date"):
            validate_field(make_field("date"), "tomorrow")

    def test_checkbox(self):
        assert validate_field(make_field("checkbox"), True).value == "1"
        assert validate_field(make_field("checkbox"), "false").value == "0"
        assert validate_field(make_field("checkbox"), None).value == "0"
        with pytest.raises(ValueError, match="must be true or false"):
            validate_field(make_field("checkbox"), "perhaps")

    def test_required_checkbox_must_be_accepted(self):
        field = make_field("checkbox", label="Terms", required=True)
        with pytest.raises(ValueError, match="The Terms field must be accepted."):
            validate_field(field, False)
        with pytest.raises(ValueError, match="The Terms field is required."):
            validate_field(field, "")

    def test_dropdown_stores_selected_option(self):
        answer = validate_field(make_field("dropdown", options=OPTIONS), "SL")
        assert answer.value == "SL"
        assert answer.value_json == {"label": "Sick", "value": "SL"}

    def test_radio_rejects_unknown_option(self):
        with pytest.raises(ValueError, match="The selected Field is invalid."):
            validate_field(make_field("radio", options=OPTIONS), "ML")

    def test_file(self):
        answer = validate_field(
            make_field("file"),
            {"key": "uploads/u/abc/cv.pdf", "original_name": "cv.pdf", "mime_type": "application/pdf", "size": 10},
        )
        assert answer.value == "uploads/u/abc/cv.pdf"
        assert answer.value_json["original_name"] == "cv.pdf"
        with pytest.raises(ValueError, match="must be an uploaded file"):
            validate_field(make_field("file"), "cv.pdf")


class TestValidateAnswers:

    def test_collects_every_error(self):
        fields = [
            make_field(label="Reason", required=True),
            make_field("number", label="Days", required=True),
            make_field(label="Comment"),
        ]
        with pytest.raises(ValidationError) as exc_info:
            validate_answers(fields, {"days": "many"})
        assert exc_info.value.errors == {
            "reason": "The Reason field is required.",
            "days": "The Days field must be a number.",
        }

    def test_one_answer_per_field_and_unknown_keys_ignored(self):
        fields = [make_field(label="Reason"), make_field(label="Comment")]
        answers = validate_answers(fields, {"reason": "x", "unknown": "y"})
        assert [a.field.field_key for a in answers] == ["reason", "comment"]
        assert [a.value for a in answers] == ["x", None]

    def test_non_object_answers(self):
        with pytest.raises(ValidationError) as exc_info:
            validate_answers([make_field()], ["x"])
        assert "answers" in exc_info.value.errors

    def test_none_answers_treated_as_empty(self):
        assert validate_answers([make_field()], None)[0].value is None
