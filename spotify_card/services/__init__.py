"""Service layer exports."""

from .credentials import (
    CredentialNotFoundError,
    CredentialService,
    ReauthorizationRequired,
)
from .renderer import WidgetRenderer
from .token_cipher import TokenCipherService
from .widget import LastKnownTopItems, WidgetService

__all__ = [
    "CredentialNotFoundError",
    "CredentialService",
    "LastKnownTopItems",
    "ReauthorizationRequired",
    "TokenCipherService",
    "WidgetRenderer",
    "WidgetService",
]
