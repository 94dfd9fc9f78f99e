from __future__ import annotations


class AnnotatorError(RuntimeError):
    """Base class for failures raised by the annotation engine."""


class ProviderError(AnnotatorError):
    """A provider call failed; the pipeline may retry it."""


class ProviderUnavailableError(ProviderError):
    """Network, authentication or quota failure."""

    def __init__(self, message: str, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code

    @property
    def is_quota(self) -> bool:
        return self.status_code == 429


class ProviderMalformedResponseError(ProviderError):
    """Provider output could not be parsed into an annotation response."""


class ProviderTimeoutError(ProviderError):
    """Provider call did not complete within the configured timeout."""


class ProviderNotFoundError(ValueError):
    """No provider is registered under the requested name."""
