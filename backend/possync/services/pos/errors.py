"""Exceptions raised by the POS sync subsystem.

The sync engine converts all of these into structured results; only the
remote client and the configuration service raise them across module
boundaries.
"""

from typing import Optional


class PosSyncError(Exception):
    """Base exception for POS sync failures."""

    def __init__(self, message: str = "POS sync error"):
        self.message = message
        super().__init__(self.message)


class PosConfigurationError(PosSyncError):
    """Raised when the subsystem is disabled or has no API key."""

    def __init__(self, message: str = "POS sync is disabled or not configured properly"):
        super().__init__(message)


class PosAuthenticationError(PosSyncError):
    """Raised when the upstream API rejects the API key (HTTP 401)."""

    def __init__(self, message: str = "invalid API key for POS payment service"):
        super().__init__(message)


class PosUpstreamUnavailableError(PosSyncError):
    """Raised on upstream HTTP 5xx. Transient; retried on the next trigger."""

    def __init__(self, message: str = "POS payment service is temporarily unavailable"):
        super().__init__(message)


class PosUpstreamRequestError(PosSyncError):
    """Raised for any other upstream failure, including timeouts."""

    def __init__(self, message: str, status_code: Optional[int] = None, body: str = ""):
        self.status_code = status_code
        self.body = body
        super().__init__(message)


class SaleValidationError(PosSyncError):
    """Raised when a single upstream sale lacks a required field."""

    def __init__(self, sale_id: Optional[str], field_name: str):
        self.sale_id = sale_id
        self.field_name = field_name
        if sale_id:
            message = f"Skipping transaction {sale_id} with missing {field_name}"
        else:
            message = f"Skipping transaction - unable to generate valid {field_name}"
        super().__init__(message)
