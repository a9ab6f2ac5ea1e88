"""Seed script: registers sample push tokens in the configured token store."""

import asyncio

from fleetpush.config import get_settings
from fleetpush.dependencies import build_document_store
from fleetpush.services.token_registry import TokenRegistry

SEED_EMAIL = "dev@example.com"
SEED_TOKENS = {
    "default": "seed-android-token-0000000001",
    "web": "seed-web-token-0000000002",
}


async def seed():
    settings = get_settings()
    store = build_document_store(settings)
    registry = TokenRegistry(store, timeout=settings.store_timeout_seconds)
    try:
        for slot, token in SEED_TOKENS.items():
            result = await registry.register(SEED_EMAIL, token, slot)
            print(f"{SEED_EMAIL} [{slot}]: {result.value}")
        print(f"Tokens now registered: {await registry.lookup(SEED_EMAIL)}")
    finally:
        await store.close()


if __name__ == "__main__":
    asyncio.run(seed())
