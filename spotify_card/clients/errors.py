"""Exceptions raised by the Spotify client wrappers."""


class UpstreamAuthError(Exception):
    """Raised when the token endpoint rejects a code or refresh token."""


class AccessTokenRejected(Exception):
    """Raised when Spotify answers 401 to a bearer token."""


class UpstreamUnavailable(Exception):
    """Raised when Spotify cannot be reached or keeps failing server-side."""


class InvalidOAuthState(Exception):
    """Raised when an OAuth state value fails verification."""


__all__ = [
    "AccessTokenRejected",
    "InvalidOAuthState",
    "UpstreamAuthError",
    "UpstreamUnavailable",
]
