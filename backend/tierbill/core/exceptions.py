"""Shared exceptions module.

These exceptions are raised by internal helpers (record store, gateway,
repository). The public billing and tier operations catch them and return
result objects instead.
"""

from typing import Optional


class TierBillException(Exception):
    """Base exception for tierbill services."""

    pass


class NotFoundException(TierBillException):
    """Exception raised when an object is not found."""

    def __init__(self, message: Optional[str] = "Object not found"):
        """Create a new NotFoundException instance.

        Args:
        ----
            message (str, optional): The error message. Has default message.

        """
        self.message = message
        super().__init__(self.message)


class ConfigurationError(TierBillException):
    """Exception raised when billing configuration is missing or unusable."""

    def __init__(self, message: Optional[str] = "Billing configuration is incomplete"):
        """Create a new ConfigurationError instance."""
        self.message = message
        super().__init__(self.message)


class ExternalServiceError(TierBillException):
    """Exception raised when an external service fails."""

    def __init__(self, service_name: str, message: Optional[str] = "External service failed"):
        """Create a new ExternalServiceError instance.

        Args:
        ----
            service_name (str): The name of the external service.
            message (str, optional): The error message. Has default message.

        """
        self.service_name = service_name
        self.message = message
        super().__init__(f"{service_name}: {message}")


class RecordStoreError(ExternalServiceError):
    """Raised when a record store call fails."""

    def __init__(
        self,
        message: Optional[str] = "Record store request failed",
        status_code: Optional[int] = None,
        action: Optional[str] = None,
        table: Optional[str] = None,
    ):
        """Create a new RecordStoreError instance.

        Args:
        ----
            message (str, optional): The backend or transport message.
            status_code (int, optional): HTTP status returned by the gateway.
            action (str, optional): The CRUD action that failed.
            table (str, optional): The table the action targeted.

        """
        self.status_code = status_code
        self.action = action
        self.table = table
        super().__init__("RecordStore", message)


class RecordStoreTimeoutError(RecordStoreError):
    """Raised when a record store call times out or cannot connect.

    Safe to retry the whole public operation from the start.
    """


def get_error_message(exc: BaseException, fallback: str) -> str:
    """Extract a human readable message from an exception.

    Args:
    ----
        exc (BaseException): The caught exception.
        fallback (str): Message used when the exception carries none.

    Returns:
    -------
        str: The message to surface in a result object.

    """
    message = getattr(exc, "message", None) or str(exc)
    return message or fallback
