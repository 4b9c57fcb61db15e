"""CSRF state token generation.

The state parameter ties the provider's callback to an authorization
request this server issued. Every call returns an independent value.
"""

from __future__ import annotations

import secrets

STATE_TOKEN_BYTES = 32


def generate_state() -> str:
    """Generate a cryptographically secure state parameter.

    Returns:
        URL-safe random string carrying 256 bits of entropy
    """
    return secrets.token_urlsafe(STATE_TOKEN_BYTES)
