class AssistantError(Exception):
    """Base class for errors raised by the assistant."""


class ConfigurationError(AssistantError):
    """A required credential or setting is missing."""


class ValidationError(AssistantError):
    """The client sent an unusable message."""


class UpstreamFetchError(AssistantError):
    """The backend data service failed or returned a non-success status."""

    def __init__(self, url: str, status_code: int | None = None) -> None:
        self.url = url
        self.status_code = status_code
        detail = f"status {status_code}" if status_code is not None else "request failed"
        super().__init__(f"Upstream fetch failed for {url}: {detail}")


class CompletionServiceError(AssistantError):
    """The completion service returned an error or an unusable response."""


class SynthesisError(AssistantError):
    """Speech synthesis failed. Never surfaced to the caller."""
