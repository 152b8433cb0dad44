"""Exception types for context storage and request handling."""


class ContextStoreError(Exception):
    """Base class for context store failures."""

    pass


class RetryExhaustedError(ContextStoreError):
    """A key-value operation failed on every attempt."""

    def __init__(self, operation: str, attempts: int) -> None:
        super().__init__(f"{operation} failed after {attempts} attempts")
        self.operation = operation
        self.attempts = attempts


class ContextCorruptedError(ContextStoreError):
    """A partitioned context is missing one of its declared parts."""

    def __init__(self, document_id: str, part: int) -> None:
        super().__init__(f"Missing part {part} for document {document_id}")
        self.document_id = document_id
        self.part = part


class DuplicateRequestError(Exception):
    """The request id was already processed inside the idempotency window."""

    def __init__(self, request_id: str) -> None:
        super().__init__(f"Request {request_id} has already been processed")
        self.request_id = request_id
