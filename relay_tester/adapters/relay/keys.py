"""Signing key loading."""

import re

from pynostr.key import PrivateKey

from relay_tester.core.models import ConfigurationError

_HEX_KEY = re.compile(r"^[0-9a-fA-F]{64}$")


def load_private_key(value: str) -> PrivateKey:
    """Parse a bech32 ``nsec1…`` or 64-character hex secret key.

    Raises:
        ConfigurationError: If the key cannot be decoded.
    """
    value = value.strip()
    try:
        if value.startswith("nsec1"):
            return PrivateKey.from_nsec(value)
        if _HEX_KEY.match(value):
            return PrivateKey(bytes.fromhex(value))
    except Exception as e:
        raise ConfigurationError(f"Invalid key: {e}") from e
    raise ConfigurationError("Invalid key: expected a bech32 nsec or 64 hex characters")
