"""API clients for external services."""

from .auth_client import (
    AuthClientError,
    DeviceAuthorization,
    MicrosoftAuthClient,
    MinecraftSession,
    TokenPollResult,
)
from .game_meta_client import GameMetaClient, GameMetaError

__all__ = [
    "AuthClientError",
    "DeviceAuthorization",
    "GameMetaClient",
    "GameMetaError",
    "MicrosoftAuthClient",
    "MinecraftSession",
    "TokenPollResult",
]
