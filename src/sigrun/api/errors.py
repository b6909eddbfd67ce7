"""
Exception hierarchy for completion providers.

The agent loop branches on these types rather than on error message text:

- ProtocolValidationError: the provider rejected the request structure
  (bad role sequencing, orphan tool messages, schema violations). Retrying
  the same history reproduces it, so the loop resets the conversation.
- TransientProviderError: network failures, timeouts, rate limits, server
  errors. The loop records the error and retries on the next tick.
- ConfigurationError: raised before the loop starts (e.g. missing API key).
"""

import typing as _typing


class SigrunError(Exception):
    """Base class for all Sigrun errors."""

    pass


class ConfigurationError(SigrunError):
    """Raised when the provider or settings are unusable (e.g. missing credentials)."""

    pass


class ProviderError(SigrunError):
    """Error returned by (or while talking to) a completion provider."""

    def __init__(
        self,
        message: str,
        *,
        status_code: int | None = None,
        body: _typing.Any = None,
    ) -> None:
        super().__init__(message)
        self.status_code = status_code
        self.body = body


class TransientProviderError(ProviderError):
    """Retryable provider failure: network, timeout, rate limit, 5xx."""

    pass


class ProviderAuthError(TransientProviderError):
    """Authentication rejected by the provider (401/403).

    Kept under the transient branch so the loop reports it through the
    iteration ceiling instead of wiping the conversation.
    """

    pass


class ProtocolValidationError(ProviderError):
    """The provider rejected the request as structurally invalid (400/422)."""

    pass
