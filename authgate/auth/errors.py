from __future__ import annotations


class ConfigurationError(RuntimeError):
    """Required process configuration (secret, credentials, host) is missing."""


class InvalidRedirect(ValueError):
    """A client-supplied redirect destination is unparseable or not http(s)."""


class OAuthError(RuntimeError):
    """The provider token exchange or profile fetch failed."""
