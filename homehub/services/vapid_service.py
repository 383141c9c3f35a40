"""VAPID key configuration: on-demand lookup and key pair generation."""

import logging
from dataclasses import dataclass

from cryptography.hazmat.primitives import serialization
from py_vapid import Vapid
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from homehub.core.encryption import decrypt_secret, encrypt_secret
from homehub.core.errors import ConfigurationUnavailable
from homehub.models.vapid_key import VapidKey
from homehub.services.key_codec import encode_bytes_to_url_safe_base64

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class VapidKeyPair:
    """Decrypted key pair ready for signing."""

    public_key: str
    private_key_pem: str

    def signer(self) -> Vapid:
        """py_vapid signer for pywebpush."""
        return Vapid.from_pem(self.private_key_pem.encode())


def generate_key_pair() -> VapidKeyPair:
    """Generate a fresh P-256 VAPID key pair."""
    vapid = Vapid()
    vapid.generate_keys()
    raw_public = vapid.public_key.public_bytes(
        encoding=serialization.Encoding.X962,
        format=serialization.PublicFormat.UncompressedPoint,
    )
    return VapidKeyPair(
        public_key=encode_bytes_to_url_safe_base64(raw_public),
        private_key_pem=vapid.private_pem().decode(),
    )


class VapidKeyService:
    """Reads the key configuration table on every call; nothing is cached."""

    def __init__(self, db: AsyncSession) -> None:
        self.db = db

    async def _current(self) -> VapidKey | None:
        result = await self.db.execute(
            select(VapidKey).order_by(VapidKey.created_at.desc(), VapidKey.id.desc()).limit(1)
        )
        return result.scalar_one_or_none()

    async def get_public_key(self) -> str | None:
        """Current public key, or None when none is configured."""
        key = await self._current()
        return key.public_key if key else None

    async def get_key_pair(self) -> VapidKeyPair:
        """Current key pair with the private key decrypted.

        Raises:
            ConfigurationUnavailable: If no key pair is stored.
        """
        key = await self._current()
        if key is None:
            raise ConfigurationUnavailable("VAPID key pair not configured")
        return VapidKeyPair(
            public_key=key.public_key,
            private_key_pem=decrypt_secret(key.private_key),
        )

    async def store_key_pair(self, pair: VapidKeyPair) -> VapidKey:
        """Replace the stored configuration with ``pair``."""
        for existing in (await self.db.execute(select(VapidKey))).scalars().all():
            await self.db.delete(existing)

        key = VapidKey(
            public_key=pair.public_key,
            private_key=encrypt_secret(pair.private_key_pem),
        )
        self.db.add(key)
        await self.db.commit()
        await self.db.refresh(key)

        logger.info("Stored new VAPID key pair: public=%s...", pair.public_key[:12])
        return key

    async def rotate(self) -> VapidKeyPair:
        """Generate and store a new pair. Existing push subscriptions become unusable."""
        pair = generate_key_pair()
        await self.store_key_pair(pair)
        return pair
