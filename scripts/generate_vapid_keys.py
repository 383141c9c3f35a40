"""Generate a VAPID key pair and store it in the vapid_keys table.

The private key is encrypted with ENCRYPTION_KEY before it is written.
The public key is printed so it can be checked against the frontend.

Usage:
    uv run python -m scripts.generate_vapid_keys

    # Print a pair without touching the database:
    uv run python -m scripts.generate_vapid_keys --dry-run

Rotating keys invalidates every existing push subscription; users must
re-enable notifications afterwards.
"""

import argparse
import asyncio
import sys

from homehub.core.database import async_session_maker, engine
from homehub.services.vapid_service import VapidKeyService, generate_key_pair


async def _store() -> str:
    try:
        async with async_session_maker() as db:
            pair = await VapidKeyService(db).rotate()
    finally:
        await engine.dispose()
    return pair.public_key


def main() -> None:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    parser.add_argument(
        "--dry-run",
        action="store_true",
        help="print a generated pair instead of storing it",
    )
    args = parser.parse_args()

    if args.dry_run:
        pair = generate_key_pair()
        print(f"VAPID public key:  {pair.public_key}")
        print(pair.private_key_pem, end="")
        return

    public_key = asyncio.run(_store())
    print(f"Stored VAPID key pair. Public key: {public_key}", file=sys.stderr)
    print(public_key, end="")


if __name__ == "__main__":
    main()
