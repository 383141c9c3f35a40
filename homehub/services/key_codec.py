"""Base64 codec for push encryption keys and VAPID application server keys.

Browsers hand out application server keys as unpadded URL-safe base64,
while subscription keys are stored with the standard alphabet.
"""

import base64
import binascii

from homehub.core.errors import MalformedKeyMaterial


def decode_url_safe_base64(key: str) -> bytes:
    """Decode URL-safe base64 that may be missing its padding.

    Raises:
        MalformedKeyMaterial: If the input contains characters outside the
            base64 alphabet after substitution, or has an impossible length.
    """
    padding = "=" * (-len(key) % 4)
    standard = (key + padding).replace("-", "+").replace("_", "/")
    try:
        return base64.b64decode(standard, validate=True)
    except (binascii.Error, ValueError) as e:
        raise MalformedKeyMaterial(f"Invalid base64 key material: {e}") from e


def encode_bytes_to_base64(data: bytes) -> str:
    """Standard (padded, non-URL-safe) base64 for storage."""
    return base64.b64encode(data).decode("ascii")


def encode_bytes_to_url_safe_base64(data: bytes) -> str:
    """Unpadded URL-safe base64, the form browsers accept as applicationServerKey."""
    return base64.urlsafe_b64encode(data).rstrip(b"=").decode("ascii")
