"""
Exception taxonomy for the ledger and the cascade sync engine.

Every exception raised by the cascade package derives from CascadeError.
DuplicateEvent is a signal rather than a failure: webhook routes answer it
with 200 so the provider stops redelivering.
"""


class CascadeError(Exception):
    """Base exception for ledger and cascade sync errors."""

    pass


class DuplicateEvent(CascadeError):
    """
    Raised when an inbound event was already recorded in the ledger.

    Attributes:
        provider: Event source (stripe, resend, twilio)
        external_event_id: Provider-assigned event id
        existing_status: Ledger status of the earlier delivery
    """

    def __init__(self, provider: str, external_event_id: str, existing_status: str | None = None):
        self.provider = provider
        self.external_event_id = external_event_id
        self.existing_status = existing_status
        super().__init__(
            f"Duplicate event: {provider}/{external_event_id} "
            f"(existing status: {existing_status or 'unknown'})"
        )


class StoreError(CascadeError):
    """
    Raised when the database layer fails.

    Carries whichever correlation identifiers were known at the failure site.

    Attributes:
        message: Error message
        original_error: Underlying SQLAlchemy/driver exception
        provider: Event source, for ledger operations
        external_event_id: Provider event id, for ledger operations
        ledger_id: Ledger entry id, for operations on a recorded event
        subject_id: Sync subject, for cascade operations
    """

    def __init__(
        self,
        message: str,
        original_error: Exception | None = None,
        *,
        provider: str | None = None,
        external_event_id: str | None = None,
        subject_id: str | None = None,
        ledger_id: str | None = None,
    ):
        self.message = message
        self.original_error = original_error
        self.provider = provider
        self.external_event_id = external_event_id
        self.subject_id = subject_id
        self.ledger_id = ledger_id
        super().__init__(self.message)

    def __str__(self):
        if self.original_error is None:
            return self.message
        return f"{self.message} ({type(self.original_error).__name__}: {self.original_error})"


class SubjectNotFound(CascadeError):
    """Raised when a sync subject (client) does not exist."""

    def __init__(self, subject_id):
        self.subject_id = str(subject_id)
        super().__init__(f"Sync subject not found: {subject_id}")


class UnknownEntityType(CascadeError):
    """Raised when a batch sync is requested for an unsupported entity type."""

    def __init__(self, entity_type: str, supported: list[str]):
        self.entity_type = entity_type
        self.supported = supported
        super().__init__(
            f"Unknown entity type '{entity_type}' (supported: {', '.join(supported)})"
        )
