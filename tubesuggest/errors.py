"""
Error taxonomy for suggestion runs.

ValidationError and AccessError are raised to the caller before any work
starts. The remaining kinds are never raised past the pipeline boundary;
they travel as values on FetchResult / AggregationResult so a run always
finishes with a (possibly empty) list.
"""


class SuggestionError(Exception):
    """Base class for all suggestion-run errors."""

    kind = "error"


class ValidationError(SuggestionError):
    """Invalid user or topic identifier, or an invalid run parameter."""

    kind = "validation"


class AccessError(SuggestionError):
    """Topic or channel not owned by the requesting user."""

    kind = "access"


class QuotaExceededError(SuggestionError):
    """External provider refused the call because the daily quota is spent."""

    kind = "quota_exceeded"


class TransientFetchError(SuggestionError):
    """Network or provider fault for a single source."""

    kind = "transient"


class InternalScoringError(SuggestionError):
    """Unexpected fault while scoring or merging one candidate."""

    kind = "internal_scoring"

    def __init__(self, message: str, video_id: str = ""):
        super().__init__(message)
        self.video_id = video_id
