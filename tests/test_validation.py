import pytest

from leadcapture.core.exceptions import ValidationError
from leadcapture.services.validation import (
    is_valid_email,
    sanitize_string,
    validate_submission,
)


def test_sanitize_string():
    assert sanitize_string("  Jane  ") == "Jane"
    assert sanitize_string("<b>Acme & Co</b>") == "bAcme  Co/b"
    assert sanitize_string("\"quoted\" 'single'") == "quoted single"


def test_is_valid_email():
    assert is_valid_email("jane@example.com") is True
    assert is_valid_email("jane.doe+tag@mail.example.co.uk") is True

    assert is_valid_email(None) is False
    assert is_valid_email("") is False
    assert is_valid_email("jane") is False
    assert is_valid_email("jane@example") is False
    assert is_valid_email("jane doe@example.com") is False
    assert is_valid_email("a" * 250 + "@x.com") is False


def test_valid_submission_is_normalized():
    result = validate_submission({
        "name": "  Jane Doe ",
        "email": "  Jane@Example.COM ",
        "company": "Acme <Corp>",
        "phone": "+1 (555) 010-0100",
    })
    assert result.name == "Jane Doe"
    assert result.email == "jane@example.com"
    assert result.company == "Acme Corp"
    assert result.phone == "+1 (555) 010-0100"
    assert result.custom_fields == {}
    assert result.email_domain == "example.com"


def test_missing_email_reported_first():
    # Email absence wins over every other problem in the payload
    for payload in (
        {"name": "Jane Doe"},
        {"name": "A"},
        {},
        {"name": "Jane Doe", "email": "   "},
        {"name": 42, "phone": "abc", "email": None},
    ):
        with pytest.raises(ValidationError) as exc_info:
            validate_submission(payload)
        assert exc_info.value.field == "email"


def test_missing_name():
    with pytest.raises(ValidationError) as exc_info:
        validate_submission({"email": "jane@example.com"})
    assert exc_info.value.field == "name"
    assert exc_info.value.message == "Name is required"


@pytest.mark.parametrize("name", ["A", "J<>", "x" * 51, "Jane 2nd", "Jane_Doe", "R2D2"])
def test_invalid_names(name):
    with pytest.raises(ValidationError) as exc_info:
        validate_submission({"name": name, "email": "jane@example.com"})
    assert exc_info.value.field == "name"


@pytest.mark.parametrize("name", ["Jo", "Mary-Jane O'Neil", "Dr. Who", "José Núñez"])
def test_accepted_names(name):
    assert validate_submission({"name": name, "email": "jane@example.com"}).name


def test_invalid_email_shape():
    with pytest.raises(ValidationError) as exc_info:
        validate_submission({"name": "Jane Doe", "email": "not-an-email"})
    assert exc_info.value.field == "email"
    assert exc_info.value.code == "VALIDATION_ERROR"


def test_company_and_phone_limits():
    with pytest.raises(ValidationError) as exc_info:
        validate_submission({"name": "Jane Doe", "email": "jane@example.com", "company": "x" * 201})
    assert exc_info.value.field == "company"

    with pytest.raises(ValidationError) as exc_info:
        validate_submission({"name": "Jane Doe", "email": "jane@example.com", "phone": "555-CALL-NOW"})
    assert exc_info.value.field == "phone"

    with pytest.raises(ValidationError) as exc_info:
        validate_submission({"name": "Jane Doe", "email": "jane@example.com", "phone": "1" * 21})
    assert exc_info.value.field == "phone"

    result = validate_submission({"name": "Jane Doe", "email": "jane@example.com", "company": "", "phone": None})
    assert result.company is None
    assert result.phone is None


def test_custom_fields_are_sanitized_and_capped():
    payload = {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "customFields": {
            "plan": "<pro>",
            "k" * 60: "v" * 600,
            "seats": 12,
            "nested": {"ignored": True},
        },
        "utm_source": "newsletter",
    }
    result = validate_submission(payload)
    assert result.custom_fields["plan"] == "pro"
    assert result.custom_fields["k" * 50] == "v" * 500
    assert result.custom_fields["seats"] == "12"
    assert result.custom_fields["utm_source"] == "newsletter"
    assert "nested" not in result.custom_fields
    assert result.submitted_custom_field_count == 4


def test_extra_custom_fields_dropped_silently():
    payload = {
        "name": "Jane Doe",
        "email": "jane@example.com",
        "customFields": {f"field{i}": str(i) for i in range(30)},
    }
    result = validate_submission(payload, max_custom_fields=20)
    assert len(result.custom_fields) == 20
    assert result.submitted_custom_field_count == 30


def test_non_object_payload():
    with pytest.raises(ValidationError) as exc_info:
        validate_submission(["name", "email"])
    assert exc_info.value.field is None
