"""Per-entry usage counting with optimistic retries.

The durable store has no transactions, so an increment is written
speculatively and then verified by reading the store back. A mismatch
means something else wrote in between; the increment is retried with
exponential backoff and fails explicitly once the retry budget is spent.
"""
import asyncio
import sys
from typing import Any, Awaitable, Callable, Dict, Iterable

from sitepalette.config import UsageConfig
from sitepalette.kv_store import KVStore
from sitepalette.storage import USAGE_KEY, RecordStorage, StorageResult


MAX_RETRIES = 3
BASE_DELAY = 0.01  # 10ms


class UsageConflictError(Exception):
    """Raised (as a StorageResult error) when verification keeps failing."""

    def __init__(self, entry_id: str, attempts: int):
        super().__init__(
            f"Failed to increment usage for {entry_id!r} after {attempts} attempts"
        )
        self.entry_id = entry_id
        self.attempts = attempts


class UsageCounter:
    """Usage counts by entry id, stored as one record map."""

    def __init__(
        self,
        store: KVStore,
        max_retries: int = MAX_RETRIES,
        base_delay: float = BASE_DELAY,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
        **cache_kwargs: Any,
    ):
        """Initialize the counter.

        Args:
            store: Durable key-value store
            max_retries: Failed verifications tolerated before giving up
            base_delay: Backoff unit in seconds; retry n waits base_delay * 2**n
            sleep: Awaitable delay function
            **cache_kwargs: Passed to the underlying RecordStorage
        """
        self.records = RecordStorage(store, USAGE_KEY, **cache_kwargs)
        self.max_retries = max_retries
        self.base_delay = base_delay
        self._sleep = sleep

    @classmethod
    def from_config(cls, store: KVStore, config: UsageConfig, **kwargs: Any) -> "UsageCounter":
        return cls(store, max_retries=config.max_retries, base_delay=config.base_delay, **kwargs)

    def backoff_delay(self, retry_count: int) -> float:
        """Delay before the next attempt, in seconds."""
        return self.base_delay * (2 ** retry_count)

    async def increment(self, entry_id: str) -> StorageResult[int]:
        """Increment the usage count of an entry.

        Args:
            entry_id: Entry id

        Returns:
            StorageResult with the new count, or a failure carrying
            UsageConflictError once retries are exhausted
        """
        if not entry_id:
            return StorageResult.fail(ValueError("Invalid ID"))

        retry_count = 0
        attempts = 0

        while retry_count < self.max_retries:
            attempts += 1
            try:
                current = await self.records.get_records()
                next_count = int(current.get(entry_id, 0) or 0) + 1

                await self.records.set_records({**current, entry_id: next_count})

                verification = await self.records.get_records()
                if verification.get(entry_id) == next_count:
                    return StorageResult.ok(next_count)
            except Exception as e:
                print(f"[UsageCounter] Storage error incrementing {entry_id}: {e}", file=sys.stderr)
                return StorageResult.fail(e)

            retry_count += 1
            print(
                f"[UsageCounter] Conflict on {entry_id}, retry {retry_count}/{self.max_retries}",
                file=sys.stderr,
            )

            if retry_count < self.max_retries:
                await self._sleep(self.backoff_delay(retry_count))

        return StorageResult.fail(UsageConflictError(entry_id, attempts))

    def schedule_increment(self, entry_id: str) -> "asyncio.Task[StorageResult[int]]":
        """Run ``increment`` as a task the caller may await or cancel."""
        return asyncio.get_running_loop().create_task(self.increment(entry_id))

    async def get_usage(self) -> Dict[str, int]:
        return await self.records.get_records()

    async def get_count(self, entry_id: str) -> int:
        return int((await self.get_usage()).get(entry_id, 0) or 0)

    async def set_usage(self, entry_id: str, count: int) -> StorageResult[int]:
        """Overwrite the usage count of an entry.

        Returns:
            StorageResult with the stored count; negative counts are rejected
        """
        if not entry_id:
            return StorageResult.fail(ValueError("Invalid ID"))
        if count < 0:
            return StorageResult.fail(ValueError(f"Usage count must be non-negative: {count}"))

        try:
            await self.records.set_record(entry_id, count)
            return StorageResult.ok(count)
        except Exception as e:
            print(f"[UsageCounter] Failed to set usage for {entry_id}: {e}", file=sys.stderr)
            return StorageResult.fail(e)

    async def prune(self, valid_ids: Iterable[str]) -> StorageResult[int]:
        """Drop counts for ids that no longer exist.

        Returns:
            StorageResult with the number of removed counts
        """
        try:
            keep = set(valid_ids)
            usage = await self.get_usage()
            pruned = {entry_id: count for entry_id, count in usage.items() if entry_id in keep}
            await self.records.set_records(pruned)
            return StorageResult.ok(len(usage) - len(pruned))
        except Exception as e:
            print(f"[UsageCounter] Failed to prune usage: {e}", file=sys.stderr)
            return StorageResult.fail(e)

    async def clear(self) -> None:
        await self.records.clear()
