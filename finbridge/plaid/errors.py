"""Exceptions raised by the Plaid API client."""

from typing import Any, Dict, Optional


class APIError(Exception):
    """Base exception for API client errors."""

    pass


class APIConnectionError(APIError):
    """Raised when the connection to the API fails before a response arrives."""

    pass


class PlaidAPIError(APIError):
    """
    Structured error response from Plaid.

    Carries the upstream HTTP status and the decoded error body
    (error_type, error_code, error_message, ...) so the boundary can
    return it unchanged.
    """

    def __init__(self, status_code: int, body: Optional[Dict[str, Any]] = None):
        self.status_code = status_code
        self.body: Dict[str, Any] = dict(body or {})
        super().__init__(
            f"Plaid API error {status_code}: "
            f"{self.error_code or 'UNKNOWN'} {self.error_message or ''}".rstrip()
        )

    @property
    def error_code(self) -> Optional[str]:
        return self.body.get("error_code")

    @property
    def error_type(self) -> Optional[str]:
        return self.body.get("error_type")

    @property
    def error_message(self) -> Optional[str]:
        return self.body.get("error_message")

    @property
    def is_product_not_ready(self) -> bool:
        return self.error_code == "PRODUCT_NOT_READY"
