"""Error taxonomy shared by the store, session and cache layers."""


class SyncError(Exception):
    """Base class for all sync-layer failures."""


class NotFoundError(SyncError):
    """A referenced record is absent from the store."""

    def __init__(self, entity_type: str, record_id: str) -> None:
        self.entity_type = entity_type
        self.record_id = record_id
        super().__init__(f"{entity_type} '{record_id}' not found")


class SessionNotFoundError(NotFoundError):
    def __init__(self, session_id: str) -> None:
        super().__init__("session", session_id)


class SessionExpiredError(SyncError):
    """Session exists but has been inactive longer than the TTL."""

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        super().__init__(f"session '{session_id}' has expired")


class CodeGenerationExhaustedError(SyncError):
    """No free join code was found within the retry ceiling."""

    def __init__(self, attempts: int) -> None:
        self.attempts = attempts
        super().__init__(f"could not generate a unique session code after {attempts} attempts")


class TransientStoreError(SyncError):
    """Network or store failure during a read or write. Safe to retry later."""


class PermissionDeniedError(SyncError):
    """The store rejected a mutation under its access rules."""
