"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Input is missing or malformed; rejected synchronously and never retried"""

    pass


class NotFoundError(DomainException):
    """Operation targets an unknown id"""

    pass


class ConflictError(DomainException):
    """Transition attempted on a credit check that is already terminal"""

    def __init__(self, request_id: int, status: str):
        super().__init__(f"Credit check {request_id} is already {status}")
        self.request_id = request_id
        self.status = status


class TransportError(DomainException):
    """Notification bus could not deliver an event"""

    pass


class ProviderError(DomainException):
    """Credit check provider returned an error or is unavailable"""

    pass
