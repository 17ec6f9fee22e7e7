"""
Tests for the application shell: root, health and error mapping.
"""

import pytest

from chatledger.api.app import status_for
from chatledger.exceptions import (
    ExtractionError,
    IdentityConflictError,
    IntegrityViolation,
    NotFoundError,
    StaleCursorError,
    TransactionError,
)


def test_root(api_client):
    response = api_client.get("/")

    assert response.status_code == 200
    assert response.json()["status"] == "ok"


def test_health(api_client):
    response = api_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "healthy", "database": "healthy"}


@pytest.mark.parametrize(
    "error, status",
    [
        (NotFoundError("session", "x"), 404),
        (IntegrityViolation("bad"), 409),
        (IdentityConflictError("codex", "s-1", 2), 409),
        (StaleCursorError(1, 3, 9), 410),
        (TransactionError("locked", retryable=True), 503),
        (TransactionError("disk full"), 500),
        (ExtractionError("/tmp/x.json", "invalid JSON"), 400),
    ],
)
def test_error_status_mapping(error, status):
    assert status_for(error) == status


def test_retryable_errors_are_marked():
    payload = TransactionError("locked", retryable=True).to_dict()

    assert payload == {
        "error": "transaction_error",
        "message": "locked",
        "retryable": True,
    }
