"""Exception types shared by the buffering, analysis and generation services."""


class ValidationError(ValueError):
    """Input was rejected before any processing or network call."""


class ImageProcessingError(ValueError):
    """Image bytes could not be decoded or re-encoded."""


class AnalysisError(RuntimeError):
    """The vision model call failed or returned nothing usable."""


class GenerationFailedError(RuntimeError):
    """The music service reported an error or the request itself failed."""


class GenerationTimeoutError(TimeoutError):
    """A track did not become ready before the deadline."""


class GenerationCancelledError(RuntimeError):
    """Polling was stopped through the caller's cancellation event."""


class NotFoundError(LookupError):
    """A requested track id was absent from the status response."""
