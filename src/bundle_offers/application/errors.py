from __future__ import annotations

from typing import Any


class InvalidStoreError(ValueError):
    """Raised when a store identifier is empty or unknown."""


class DuplicateCodeError(Exception):
    """Raised by a promotion store when an issued code already exists."""

    def __init__(self, code: str) -> None:
        super().__init__(f"Promotion code already exists: {code}")
        self.code = code


class GatewayError(Exception):
    """Structured error raised by promotion gateway and catalog adapters."""

    def __init__(
        self,
        message: str,
        status_code: int | None = None,
        code: str | None = None,
        detail: Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.code = code
        self.detail = detail

    @property
    def is_validation_rejection(self) -> bool:
        return self.status_code == 422

    @property
    def is_conflict(self) -> bool:
        return self.status_code == 409

    @property
    def is_not_found(self) -> bool:
        return self.status_code == 404

    def mentions_field(self, field_name: str) -> bool:
        """Check whether the platform detail flags the given field."""
        return _mentions_field(self.detail, field_name.lower())


FIELD_CONTAINER_KEYS = ("fields", "errors")


def _mentions_field(detail: Any, field_name: str, in_fields: bool = False) -> bool:
    # only keys below a "fields"/"errors" container name a rejected field
    if isinstance(detail, dict):
        for key, value in detail.items():
            key = str(key).lower()
            if in_fields and key == field_name:
                return True
            if _mentions_field(value, field_name, in_fields or key in FIELD_CONTAINER_KEYS):
                return True
        return False
    if isinstance(detail, (list, tuple)):
        return any(_mentions_field(item, field_name, in_fields) for item in detail)
    return False
