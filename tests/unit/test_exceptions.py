"""
Unit tests for exceptions module.

Tests all exception types, their attributes and structured output.
"""

from uuid import UUID, uuid4

import pytest

from fulfillment.exceptions import (
    CatalogItemNotFoundError,
    ConflictError,
    FulfillmentError,
    FulfillmentTimeoutError,
    GenreNotFoundError,
    InsufficientStockError,
    InvalidRequestError,
    ItemNotFoundError,
    StorageUnavailableError,
)


class TestHierarchy:
    @pytest.mark.parametrize(
        "error_type",
        [
            InvalidRequestError,
            ItemNotFoundError,
            InsufficientStockError,
            ConflictError,
            FulfillmentTimeoutError,
            StorageUnavailableError,
            CatalogItemNotFoundError,
            GenreNotFoundError,
        ],
    )
    def test_all_errors_derive_from_base(self, error_type):
        assert issubclass(error_type, FulfillmentError)

    def test_only_transient_errors_are_retryable(self):
        assert ConflictError.retryable is True
        assert FulfillmentTimeoutError.retryable is True
        assert InsufficientStockError.retryable is False
        assert StorageUnavailableError.retryable is False


class TestInvalidRequestError:
    def test_carries_field_errors(self):
        errors = [{"loc": ("items", 0, "quantity"), "msg": "too small", "type": "greater_than"}]
        error = InvalidRequestError("bad request", errors=errors)

        data = error.to_dict()

        assert data["error"] == "InvalidRequestError"
        assert data["message"] == "bad request"
        assert data["errors"] == [
            {"loc": ["items", 0, "quantity"], "msg": "too small", "type": "greater_than"}
        ]

    def test_errors_default_to_empty(self):
        assert InvalidRequestError("bad").errors == []


class TestItemNotFoundError:
    def test_missing_ids_sorted(self):
        ids = [UUID(int=3), UUID(int=1), UUID(int=2)]

        error = ItemNotFoundError(ids)

        assert error.missing_ids == sorted(ids, key=str)
        assert str(UUID(int=1)) in str(error)
        assert error.to_dict()["missing_ids"] == [str(i) for i in sorted(ids, key=str)]


class TestInsufficientStockError:
    def test_attributes_and_message(self):
        item_id = uuid4()

        error = InsufficientStockError(item_id, "Dune", requested=5, available=2)

        assert error.shortfall == 3
        assert '"Dune"' in str(error)
        assert error.to_dict() == {
            "error": "InsufficientStockError",
            "message": str(error),
            "retryable": False,
            "item_id": str(item_id),
            "title": "Dune",
            "requested": 5,
            "available": 2,
            "shortfall": 3,
        }


class TestConflictError:
    def test_message_mentions_item(self):
        item_id = uuid4()
        assert str(item_id) in str(ConflictError(item_id=item_id))

    def test_attempts_appended_when_exhausted(self):
        error = ConflictError(attempts=4)
        assert "gave up after 4 attempts" in str(error)
        assert error.to_dict()["attempts"] == 4
        assert error.to_dict()["item_id"] is None


class TestOtherErrors:
    def test_timeout(self):
        error = FulfillmentTimeoutError(2.5)
        assert error.timeout == 2.5
        assert "2.5" in str(error)
        assert error.to_dict()["timeout"] == 2.5

    def test_storage_unavailable(self):
        error = StorageUnavailableError("sqlite", "disk I/O error")
        assert error.backend == "sqlite"
        assert "disk I/O error" in str(error)
        assert error.to_dict()["backend"] == "sqlite"

    def test_catalog_errors_carry_ids(self):
        item_id, genre_id = uuid4(), uuid4()
        assert CatalogItemNotFoundError(item_id).item_id == item_id
        assert GenreNotFoundError(genre_id).genre_id == genre_id
