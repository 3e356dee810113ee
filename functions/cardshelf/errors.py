"""
Error taxonomy shared by the controllers and the HTTP layer.

Every failure is scoped to the single request that triggered it; the
``status_code`` attribute tells the FastAPI handler how to report it.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:
    from cardshelf.models import CreateStage


class CardShelfError(Exception):
    """Base class for all user-facing failures."""

    status_code = 500

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ValidationError(CardShelfError):
    """A field is missing or malformed. Raised before any network call."""

    status_code = 400

    def __init__(self, field: str, message: str):
        super().__init__(message)
        self.field = field


class AuthError(CardShelfError):
    status_code = 401

    def __init__(self, code: str, message: str):
        super().__init__(message)
        self.code = code


class NotAuthenticatedError(CardShelfError):
    status_code = 401

    def __init__(self, message: str = "Sign in first"):
        super().__init__(message)


class NotFoundError(CardShelfError):
    status_code = 404


class BusyError(CardShelfError):
    """The same action is already running for the same record."""

    status_code = 409


class ImageConversionError(CardShelfError):
    status_code = 422


class StoreError(CardShelfError):
    """A document store, blob store or network call failed."""

    status_code = 502


class CreateFailed(StoreError):
    """
    Create stopped part way through.

    ``stage`` is the last stage that completed (``None`` when nothing was
    written) and ``record_id`` the document left behind, if any.
    """

    def __init__(
        self,
        message: str,
        *,
        record_id: Optional[str],
        stage: Optional["CreateStage"],
    ):
        super().__init__(message)
        self.record_id = record_id
        self.stage = stage
