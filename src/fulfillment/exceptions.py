"""Library exceptions for the fulfillment package."""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any
from uuid import UUID


class FulfillmentError(Exception):
    """Base exception for the fulfillment package."""

    retryable: bool = False

    def to_dict(self) -> dict[str, Any]:
        """Structured representation for transport adapters."""
        return {"error": type(self).__name__, "message": str(self), "retryable": self.retryable}


class InvalidRequestError(FulfillmentError):
    """
    Raised when a request is malformed or empty.

    Always raised before any storage access.

    Attributes:
        errors: Field-level validation errors (pydantic's ``errors()`` format)
    """

    def __init__(self, message: str, errors: list[dict[str, Any]] | None = None) -> None:
        self.errors = errors or []
        super().__init__(message)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["errors"] = [
            {"loc": list(e.get("loc", ())), "msg": e.get("msg", ""), "type": e.get("type", "")}
            for e in self.errors
        ]
        return data


class ItemNotFoundError(FulfillmentError):
    """Raised when requested catalog items do not exist or are soft-deleted."""

    def __init__(self, missing_ids: Iterable[UUID]) -> None:
        self.missing_ids = sorted(missing_ids, key=str)
        ids = ", ".join(str(i) for i in self.missing_ids)
        super().__init__(f"Catalog items not found or deleted: {ids}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["missing_ids"] = [str(i) for i in self.missing_ids]
        return data


class InsufficientStockError(FulfillmentError):
    """
    Raised when a catalog item cannot cover the requested quantity.

    The caller may retry with an adjusted quantity.

    Attributes:
        item_id: The catalog item that is short
        title: Title of the catalog item
        requested: Total quantity requested for the item
        available: Stock on hand at the time of the check
        shortfall: ``requested - available``
    """

    def __init__(self, item_id: UUID, title: str, requested: int, available: int) -> None:
        self.item_id = item_id
        self.title = title
        self.requested = requested
        self.available = available
        self.shortfall = requested - available
        super().__init__(
            f'Insufficient stock for "{title}" ({item_id}): '
            f"requested {requested}, available {available}"
        )

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(
            item_id=str(self.item_id),
            title=self.title,
            requested=self.requested,
            available=self.available,
            shortfall=self.shortfall,
        )
        return data


class ConflictError(FulfillmentError):
    """
    Raised when a concurrent writer invalidated the read snapshot.

    Transient: the whole operation is safe to retry.

    Attributes:
        item_id: Catalog item whose conditional decrement failed, if known
        attempts: Number of attempts made before giving up (0 while still retrying)
    """

    retryable = True

    def __init__(self, item_id: UUID | None = None, attempts: int = 0, message: str = "") -> None:
        self.item_id = item_id
        self.attempts = attempts
        detail = message or (
            f"Concurrent stock update on catalog item {item_id}"
            if item_id
            else "Concurrent update conflict"
        )
        if attempts:
            detail = f"{detail} (gave up after {attempts} attempts)"
        super().__init__(detail)

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update(item_id=str(self.item_id) if self.item_id else None, attempts=self.attempts)
        return data


class FulfillmentTimeoutError(FulfillmentError):
    """Raised when a fulfillment attempt exceeds its time bound and was rolled back."""

    retryable = True

    def __init__(self, timeout: float, message: str = "") -> None:
        self.timeout = timeout
        super().__init__(message or f"Fulfillment did not complete within {timeout}s")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["timeout"] = self.timeout
        return data


class StorageUnavailableError(FulfillmentError):
    """
    Raised when the storage backend fails for infrastructure reasons.

    Never retried internally; the original driver exception is chained.
    """

    def __init__(self, backend: str, message: str) -> None:
        self.backend = backend
        super().__init__(f"Storage backend {backend} unavailable: {message}")

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data["backend"] = self.backend
        return data


class CatalogItemNotFoundError(FulfillmentError):
    """Raised by catalog management operations when the target item does not exist."""

    def __init__(self, item_id: UUID) -> None:
        self.item_id = item_id
        super().__init__(f"Catalog item not found: {item_id}")


class GenreNotFoundError(FulfillmentError):
    """Raised by catalog management operations when the target genre does not exist."""

    def __init__(self, genre_id: UUID) -> None:
        self.genre_id = genre_id
        super().__init__(f"Genre not found: {genre_id}")
