"""Tests for the error taxonomy and its mapping at the request boundary."""

import pytest

from signdesk.core.errors import InputError, NotFoundError, SigningAppError, SigningError


@pytest.mark.parametrize(
    "error_class, status_code",
    [(InputError, 400), (NotFoundError, 404), (SigningError, 500), (SigningAppError, 500)],
)
def test_status_codes(error_class, status_code):
    error = error_class("nope")
    assert error.status_code == status_code
    assert error.message == "nope"
    assert str(error) == "nope"


def test_not_found_maps_to_json(make_client):
    response = make_client().post("/api/docs/sign", json={"documentId": 7})
    assert response.status_code == 404
    assert response.json() == {"error": "Document not found"}
