import pytest
from pydantic import BaseModel, Field

from core.models.errors import ValidationError
from core.utils.validators import sanitize_validation_errors, validate_request


class Params(BaseModel):
    limit: int = Field(..., ge=1, le=100)
    offset: int = Field(0, ge=0)


def test_validate_request_coerces_query_strings() -> None:
    params = validate_request(Params, {"limit": "10", "offset": "5"})

    assert params.limit == 10
    assert params.offset == 5


def test_validate_request_raises_domain_error() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_request(Params, {"limit": "abc"})

    errors = exc_info.value.details["errors"]
    assert errors == [{"field": "limit", "message": "Must be an integer"}]


def test_validate_request_missing_field() -> None:
    with pytest.raises(ValidationError) as exc_info:
        validate_request(Params, {})

    assert exc_info.value.details["errors"][0]["message"] == "This field is required"


def test_sanitize_strips_internal_keys() -> None:
    sanitized = sanitize_validation_errors(
        [
            {
                "loc": ("image_id",),
                "msg": "Value error, image_id must not be blank",
                "input": "   ",
                "ctx": {"error": "x"},
                "url": "https://errors.pydantic.dev",
            }
        ]
    )

    assert sanitized == [{"field": "image_id", "message": "image_id must not be blank"}]


def test_sanitize_defaults_field_to_body() -> None:
    assert sanitize_validation_errors([{"loc": (), "msg": "bad"}]) == [
        {"field": "body", "message": "bad"}
    ]
