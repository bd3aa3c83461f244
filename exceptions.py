"""Exception hierarchy for podsignal."""


class PodsignalError(Exception):
    """Base exception for all podsignal errors."""


class ValidationError(PodsignalError):
    """Raised when caller input is malformed or out of range."""


class NotFoundError(PodsignalError):
    """Raised when a referenced publisher, episode or campaign does not exist."""


class EnrichmentError(PodsignalError):
    """Raised when the LLM enrichment call fails or returns an invalid payload."""


class FeedError(PodsignalError):
    """Raised when an RSS feed cannot be fetched or parsed."""
