"""
Provider factory.

Builds the configured completion provider from Settings.
"""

from __future__ import annotations

import logging as _logging
import typing as _typing

import httpx as _httpx

import sigrun.api.base as base
import sigrun.api.openai_provider as openai_provider

if _typing.TYPE_CHECKING:
    import sigrun.config as config

_logger = _logging.getLogger(__name__)


def create_provider(
    settings: config.Settings,
    *,
    transport: _httpx.AsyncBaseTransport | None = None,
) -> base.CompletionProvider:
    """
    Create the completion provider described by `settings.provider`.

    Credentials are not validated here; the agent loop checks them before
    it starts so a missing key surfaces as a ConfigurationError up front.

    Args:
        settings: Effective settings
        transport: Optional httpx transport (tests)

    Returns:
        A ready-to-use CompletionProvider
    """
    provider_config = settings.provider
    _logger.debug(
        "Creating provider for %s (model=%s)", provider_config.base_url, provider_config.model
    )
    return openai_provider.OpenAICompatibleProvider(
        base_url=provider_config.base_url,
        model=provider_config.model,
        temperature=provider_config.temperature,
        api_key=provider_config.api_key,
        credentials_path=provider_config.credentials_path,
        timeout=settings.loop.request_timeout_seconds,
        transport=transport,
    )
