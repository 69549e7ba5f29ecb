"""
Provider streaming transports.

The orchestrator depends only on `ProviderTransport.stream`; `get_transport`
picks the variant for a model config's provider family.
"""
from typing import Optional

import aiohttp

from models import ProviderType
from storage import ConfigurationError

from .base import (
    INLINE,
    STRUCTURED,
    ProviderTransport,
    SSELineDecoder,
    StreamEvent,
    StreamEventKind,
    TransportError,
)
from .anthropic import AnthropicTransport
from .glm import GLMTransport
from .openai import OpenAITransport

TRANSPORTS: dict[ProviderType, type[ProviderTransport]] = {
    ProviderType.OPENAI: OpenAITransport,
    ProviderType.AZURE: OpenAITransport,
    ProviderType.CUSTOM: OpenAITransport,
    ProviderType.GLM: GLMTransport,
    ProviderType.ANTHROPIC: AnthropicTransport,
}


def get_transport(
    provider_type: ProviderType,
    session: Optional[aiohttp.ClientSession] = None,
) -> ProviderTransport:
    """Create the transport for a provider family."""
    transport_cls = TRANSPORTS.get(provider_type)
    if transport_cls is None:
        raise ConfigurationError(f"Unsupported provider type: {provider_type}")
    return transport_cls(session=session)


__all__ = [
    "INLINE",
    "STRUCTURED",
    "AnthropicTransport",
    "GLMTransport",
    "OpenAITransport",
    "ProviderTransport",
    "SSELineDecoder",
    "StreamEvent",
    "StreamEventKind",
    "TRANSPORTS",
    "TransportError",
    "get_transport",
]
