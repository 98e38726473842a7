"""
Custom exceptions for the application.

Services raise these; controllers translate them to HTTP status codes in
``isp_admin.core.api_utils.handle_service_errors``.
"""


class EntityNotFoundError(ValueError):
    """Raised when a requested aggregate does not exist."""

    def __init__(self, entity: str, entity_id=None, message: str = None):
        self.entity = entity
        self.entity_id = entity_id
        if message is None:
            if entity_id is None:
                message = f"{entity} not found"
            else:
                message = f"{entity} with ID {entity_id} not found"
        super().__init__(message)


class InvalidOperationError(ValueError):
    """Raised when a business rule forbids the requested operation."""

    pass


class InsufficientCreditError(InvalidOperationError):
    """Raised when a customer's credit balance cannot cover a deduction."""

    def __init__(self, customer_id: int, balance, requested):
        self.customer_id = customer_id
        self.balance = balance
        self.requested = requested
        super().__init__(
            f"Insufficient credit for customer {customer_id}: "
            f"balance {balance}, requested {requested}"
        )


class ExternalServiceError(Exception):
    """Raised when a hosting panel, registrar, gateway or rate provider fails."""

    def __init__(self, service: str, message: str, status_code: int = None):
        self.service = service
        self.status_code = status_code
        super().__init__(f"{service}: {message}")


class UnsupportedProviderError(ValueError):
    """Raised by integration factories for unknown provider codes."""

    def __init__(self, kind: str, code: str):
        self.kind = kind
        self.code = code
        super().__init__(f"Unsupported {kind}: {code}")
