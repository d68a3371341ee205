"""
Reference-id deduplication within a batch and against prior earnings.
"""

import asyncio
from typing import List, Set

import structlog

from agent_earnings.core.exceptions import DuplicateReferenceError
from ..core.protocols import EarningsStore
from ..core.resilience import RetryPolicy, call_with_retry
from ..core.types import EarningDraft


logger = structlog.get_logger(__name__)


class ReferenceRegistry:
    """
    Process-wide compare-and-reserve of reference ids.

    Shared by every batch and lifecycle call of one engine so that two
    concurrent submissions carrying the same reference cannot both create an
    earning. A reservation lasts until the creating call releases it; after
    that the store itself answers for the reference.
    """

    def __init__(self):
        self._lock = asyncio.Lock()
        self._reserved: Set[str] = set()

    async def try_reserve(self, reference_id: str) -> bool:
        async with self._lock:
            if reference_id in self._reserved:
                return False
            self._reserved.add(reference_id)
            return True

    async def release(self, reference_id: str) -> None:
        async with self._lock:
            self._reserved.discard(reference_id)

    def is_reserved(self, reference_id: str) -> bool:
        return reference_id in self._reserved


class Deduplicator:
    """Enforces reference-id uniqueness. Drafts without a reference are never deduplicated."""

    def __init__(self, store: EarningsStore, registry: ReferenceRegistry, policy: RetryPolicy):
        self.store = store
        self.registry = registry
        self.policy = policy

    @staticmethod
    def find_in_batch_duplicates(drafts: List[EarningDraft]) -> Set[int]:
        """Row numbers of every occurrence after the first of a reference id."""
        seen: Set[str] = set()
        duplicates: Set[int] = set()
        for draft in drafts:
            if not draft.reference_id:
                continue
            if draft.reference_id in seen:
                duplicates.add(draft.row_number)
            else:
                seen.add(draft.reference_id)
        return duplicates

    async def reserve(self, reference_id: str) -> None:
        """
        Reserve a reference for creation, raising DuplicateReferenceError when
        another in-flight call holds it or a stored earning already uses it.
        """
        if not await self.registry.try_reserve(reference_id):
            raise DuplicateReferenceError(reference_id)

        try:
            existing = await call_with_retry(
                "find_by_reference_id",
                lambda: self.store.find_by_reference_id(reference_id),
                self.policy,
            )
        except BaseException:
            await self.registry.release(reference_id)
            raise

        if existing is not None:
            await self.registry.release(reference_id)
            raise DuplicateReferenceError(reference_id, existing_earning_id=existing.id)

    async def release(self, reference_id: str) -> None:
        await self.registry.release(reference_id)
