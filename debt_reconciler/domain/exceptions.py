"""Domain-specific exceptions"""


class DomainException(Exception):
    """Base exception for domain layer"""

    pass


class ValidationError(DomainException):
    """Caller supplied an unusable value (unknown source tag, bad manual entry)"""

    def __init__(self, field: str, message: str):
        super().__init__(f"{field}: {message}")
        self.field = field
        self.message = message


class StructuralUploadError(DomainException):
    """Uploaded spreadsheet is malformed; the whole upload is rejected"""

    pass


class InvalidRowError(DomainException):
    """A single spreadsheet row cannot be used; the row is skipped, the batch continues"""

    def __init__(self, reason: str, code: str):
        super().__init__(reason)
        self.reason = reason
        self.code = code


class ConflictError(DomainException):
    """Entry already exists; rejected before any write"""

    pass


class ExternalServiceError(DomainException):
    """Sales, starting-debt or customer service returned an error or is unavailable"""

    pass


class PersistenceError(DomainException):
    """Batch commit failed and was rolled back"""

    pass


class JobSubmissionError(DomainException):
    """Aggregation job could neither be queued nor run"""

    pass
