"""Ledger error taxonomy.

Every error carries a stable ``code`` so the HTTP layer can render a
structured response without inspecting messages.
"""


class LedgerError(Exception):
    """Base class for all ledger errors."""

    code = "ledger_error"
    status_code = 400

    def __init__(self, detail: str):
        super().__init__(detail)
        self.detail = detail


class EmbeddingMissing(LedgerError):
    """Entity creation attempted without a usable embedding (or with empty text)."""

    code = "embedding_missing"
    status_code = 422


class EmbeddingUnavailable(LedgerError):
    """The embedding provider could not be reached or returned garbage."""

    code = "embedding_unavailable"
    status_code = 503


class EntityNotFound(LedgerError):
    """A caller-supplied id does not resolve."""

    code = "entity_not_found"
    status_code = 404


class NotAuthorized(LedgerError):
    """Caller is not allowed to perform the action."""

    code = "not_authorized"
    status_code = 403


class InvalidState(LedgerError):
    """Action is not valid in the entity's current state."""

    code = "invalid_state"
    status_code = 409


class OutOfRangeValue(LedgerError):
    """Explicit caller input outside its allowed range."""

    code = "out_of_range"
    status_code = 422
