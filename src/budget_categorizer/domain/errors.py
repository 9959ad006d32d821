class CategorizationError(Exception):
    """Base class for errors surfaced to the caller of the categorizer."""


class InvalidTransactionError(CategorizationError):
    """The transaction is missing fields the cascade needs."""


class InvalidCategorizationError(CategorizationError):
    """A manual categorization references an unknown or mismatched category."""
