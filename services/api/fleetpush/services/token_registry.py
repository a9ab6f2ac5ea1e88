"""Registry of push delivery tokens per user identity and device slot.

Each identity owns one document holding an ``fcmTokens`` array of entries::

    {"deviceId": "<slot>", "fcmToken": "<token>", "createdAt": "...", "updatedAt": "..."}

Single-entry inserts and removals go through the store's atomic array
primitives. Replacing the token of an existing slot (or upgrading a legacy
record) rewrites the whole array; concurrent writers to the same identity are
last-writer-wins in that case.
"""

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Awaitable, Callable, Iterable, TypeVar

from fleetpush.exceptions import RegistryUnavailable, ValidationError
from fleetpush.stores.base import DocumentStore, StoreError

logger = logging.getLogger(__name__)

T = TypeVar("T")

TOKENS_FIELD = "fcmTokens"
DEFAULT_DEVICE_SLOT = "default"
MIN_TOKEN_LENGTH = 10  # tokens must be strictly longer
MAX_DEVICE_SLOT_LENGTH = 255

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_QUOTE_CHARS = "\"'"


def normalize_identity(raw: Any) -> str:
    """Trim, drop quote characters and lower-case an identity."""
    if not isinstance(raw, str):
        raise ValidationError("Identity must be a string")
    cleaned = raw.strip()
    for ch in _QUOTE_CHARS:
        cleaned = cleaned.replace(ch, "")
    return cleaned.strip().lower()


def validate_identity(raw: Any) -> str:
    identity = normalize_identity(raw)
    if len(identity) <= 3 or not _EMAIL_RE.match(identity):
        raise ValidationError("Invalid or missing email")
    return identity


def validate_token(token: Any) -> str:
    if not isinstance(token, str) or len(token) <= MIN_TOKEN_LENGTH:
        raise ValidationError("Invalid or missing FCM token")
    return token


def normalize_device_slot(raw: Any) -> str:
    if raw is None:
        return DEFAULT_DEVICE_SLOT
    if not isinstance(raw, str):
        raw = str(raw)
    slot = raw.strip()
    if not slot:
        return DEFAULT_DEVICE_SLOT
    if len(slot) > MAX_DEVICE_SLOT_LENGTH:
        raise ValidationError("deviceId is too long")
    return slot


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _parse_timestamp(value: Any) -> datetime | None:
    if isinstance(value, datetime):
        return value
    if isinstance(value, str):
        try:
            return datetime.fromisoformat(value)
        except ValueError:
            return None
    return None


@dataclass
class TokenEntry:
    device_slot: str
    token: str
    created_at: datetime | None = None
    updated_at: datetime | None = None
    # Exact stored value, used for atomic array removal
    raw: Any = field(default=None, repr=False, compare=False)

    @property
    def is_legacy(self) -> bool:
        return not isinstance(self.raw, dict) or "fcmToken" not in self.raw

    def to_document(self) -> dict[str, Any]:
        doc: dict[str, Any] = {"deviceId": self.device_slot, "fcmToken": self.token}
        if self.created_at is not None:
            doc["createdAt"] = self.created_at.isoformat()
        if self.updated_at is not None:
            doc["updatedAt"] = self.updated_at.isoformat()
        return doc


@dataclass
class UserTokenRecord:
    identity: str
    entries: list[TokenEntry] = field(default_factory=list)

    @property
    def tokens(self) -> list[str]:
        seen: list[str] = []
        for entry in self.entries:
            if entry.token not in seen:
                seen.append(entry.token)
        return seen

    @property
    def has_legacy_entries(self) -> bool:
        return any(entry.is_legacy for entry in self.entries)

    def find_slot(self, device_slot: str) -> TokenEntry | None:
        for entry in self.entries:
            if entry.device_slot == device_slot:
                return entry
        return None

    @classmethod
    def from_document(cls, identity: str, document: dict[str, Any] | None) -> "UserTokenRecord":
        """Parse a stored document, upgrading legacy entry shapes.

        Bare-string entries take the ``default`` slot when it is free, then
        ``legacy-1``, ``legacy-2``, ... in array order.
        """
        record = cls(identity=identity)
        raw_entries = (document or {}).get(TOKENS_FIELD) or []
        structured_slots = {
            normalize_device_slot(item.get("deviceId"))
            for item in raw_entries
            if isinstance(item, dict)
        }
        legacy_index = 0
        for item in raw_entries:
            if isinstance(item, str):
                if item in record.tokens:
                    continue
                if DEFAULT_DEVICE_SLOT not in structured_slots and record.find_slot(DEFAULT_DEVICE_SLOT) is None:
                    slot = DEFAULT_DEVICE_SLOT
                else:
                    legacy_index += 1
                    slot = f"legacy-{legacy_index}"
                record.entries.append(TokenEntry(device_slot=slot, token=item, raw=item))
            elif isinstance(item, dict):
                token = item.get("fcmToken") or item.get("token")
                if not isinstance(token, str) or not token:
                    logger.warning("Skipping malformed token entry for %s", identity)
                    continue
                record.entries.append(
                    TokenEntry(
                        device_slot=normalize_device_slot(item.get("deviceId")),
                        token=token,
                        created_at=_parse_timestamp(item.get("createdAt")),
                        updated_at=_parse_timestamp(item.get("updatedAt")),
                        raw=item,
                    )
                )
        return record

    def to_document(self) -> dict[str, Any]:
        return {TOKENS_FIELD: [entry.to_document() for entry in self.entries]}


class RegistrationResult(str, Enum):
    INSERTED = "inserted"
    REPLACED = "replaced"
    UNCHANGED = "unchanged"


@dataclass(frozen=True)
class UnregisterResult:
    removed: bool
    removed_count: int = 0


class TokenRegistry:
    """Register, unregister, look up and prune delivery tokens."""

    def __init__(
        self,
        store: DocumentStore,
        timeout: float | None = 5.0,
        clock: Callable[[], datetime] = utcnow,
    ) -> None:
        self._store = store
        self._timeout = timeout
        self._clock = clock

    async def _call(self, operation: str, coro: Awaitable[T]) -> T:
        try:
            return await asyncio.wait_for(coro, timeout=self._timeout)
        except asyncio.TimeoutError as e:
            logger.warning("Token store %s timed out after %ss", operation, self._timeout)
            raise RegistryUnavailable(f"Token store {operation} timed out") from e
        except StoreError as e:
            logger.error("Token store %s failed: %s", operation, e)
            raise RegistryUnavailable(f"Token store {operation} failed") from e

    async def get_record(self, identity: str) -> UserTokenRecord | None:
        key = validate_identity(identity)
        document = await self._call("read", self._store.get(key))
        if document is None:
            return None
        return UserTokenRecord.from_document(key, document)

    async def register(
        self,
        identity: str,
        token: str,
        device_slot: str | None = None,
    ) -> RegistrationResult:
        key = validate_identity(identity)
        token = validate_token(token)
        slot = normalize_device_slot(device_slot)

        document = await self._call("read", self._store.get(key))
        record = UserTokenRecord.from_document(key, document)
        now = self._clock()

        existing = record.find_slot(slot)
        if existing is not None and existing.token == token:
            logger.debug("Token already registered for slot %s", slot)
            return RegistrationResult.UNCHANGED

        if existing is None and not record.has_legacy_entries:
            entry = TokenEntry(device_slot=slot, token=token, created_at=now, updated_at=now)
            await self._call("array_union", self._store.array_union(key, TOKENS_FIELD, [entry.to_document()]))
            logger.info("Registered token %s... on new slot %s", token[:10], slot)
            return RegistrationResult.INSERTED

        entries: list[TokenEntry] = []
        replaced = False
        for current in record.entries:
            if current.device_slot != slot:
                entries.append(current)
            elif not replaced:
                # Keep the original createdAt of the slot
                entries.append(
                    TokenEntry(
                        device_slot=slot,
                        token=token,
                        created_at=current.created_at or now,
                        updated_at=now,
                    )
                )
                replaced = True
        if not replaced:
            entries.append(TokenEntry(device_slot=slot, token=token, created_at=now, updated_at=now))

        record.entries = entries
        await self._call("update", self._store.update(key, record.to_document()))
        if replaced:
            logger.info("Replaced token on slot %s with %s...", slot, token[:10])
            return RegistrationResult.REPLACED
        logger.info("Registered token %s... on new slot %s (record upgraded)", token[:10], slot)
        return RegistrationResult.INSERTED

    async def unregister(
        self,
        identity: str,
        device_slot: str | None = None,
        token: str | None = None,
    ) -> UnregisterResult:
        if (device_slot is None) == (token is None):
            raise ValidationError("Exactly one of deviceId or token is required")
        key = validate_identity(identity)
        if device_slot is not None:
            attr, wanted = "device_slot", normalize_device_slot(device_slot)
        else:
            if not isinstance(token, str) or not token:
                raise ValidationError("Invalid token")
            attr, wanted = "token", token

        record = await self.get_record(key)
        if record is None:
            return UnregisterResult(removed=False)

        matches = [entry for entry in record.entries if getattr(entry, attr) == wanted]
        if not matches:
            return UnregisterResult(removed=False)

        await self._remove_entries(key, matches)
        logger.info("Unregistered %d token(s)", len(matches))
        return UnregisterResult(removed=True, removed_count=len(matches))

    async def lookup(self, identity: str, device_slot: str | None = None) -> list[str]:
        record = await self.get_record(identity)
        if record is None:
            return []
        if device_slot is not None:
            entry = record.find_slot(normalize_device_slot(device_slot))
            return [entry.token] if entry is not None else []
        return record.tokens

    async def first_token(self, identity: str, device_slot: str | None = None) -> str | None:
        tokens = await self.lookup(identity, device_slot)
        return tokens[0] if tokens else None

    async def prune(self, identity: str, tokens_to_remove: Iterable[str]) -> int:
        """Remove every entry whose token is in ``tokens_to_remove``.

        Returns the number of entries removed.
        """
        doomed = set(tokens_to_remove)
        if not doomed:
            return 0
        key = validate_identity(identity)
        record = await self.get_record(key)
        if record is None:
            return 0
        matches = [entry for entry in record.entries if entry.token in doomed]
        if not matches:
            return 0
        await self._remove_entries(key, matches)
        logger.info("Pruned %d invalid token(s)", len(matches))
        return len(matches)

    async def _remove_entries(self, key: str, entries: list[TokenEntry]) -> None:
        raw_values = [entry.raw for entry in entries if entry.raw is not None]
        await self._call("array_remove", self._store.array_remove(key, TOKENS_FIELD, raw_values))
        # Empty records are deleted, never kept
        deleted = await self._call("delete_if_empty", self._store.delete_if_empty(key, TOKENS_FIELD))
        if deleted:
            logger.info("Token array empty; record deleted")
