"""Reconciliation of authoritative batches into the local message cache.

Every inbound ``message_update`` batch is folded into the MessageStore:
authoritative entries overwrite anything with the same id, then stale
optimistic placeholders are evicted.

Eviction policies:
    - "all": evict every optimistic entry as soon as any batch arrives. A
      pending message can disappear if an unrelated batch (another user's
      turn in a shared room) lands before the server echoes it back.
    - "matching": evict only optimistic entries whose role and content equal
      a message in the batch just merged.

Ordering modes:
    - "pairwise": stable sort with a single pairwise rule (a child sorts after
      its parent, everything else compares equal). Only a total order when the
      history is one linear chain.
    - "topological": stable Kahn sort; handles branches, orphans and cycles.
"""
import heapq
import logging
from functools import cmp_to_key
from typing import Dict, Iterable, List, Literal, Optional

from .models import OPTIMISTIC_ID_PREFIX, Message, is_optimistic_id
from .store import MessageStore

logger = logging.getLogger(__name__)

EvictionPolicy = Literal["all", "matching"]
OrderingMode = Literal["pairwise", "topological"]


def _parent_compare(a: Message, b: Message) -> int:
    if a.parent == b.id:
        return 1
    if b.parent == a.id:
        return -1
    return 0


def pairwise_order(entries: Iterable[Message]) -> List[Message]:
    """Order messages so that a child follows its parent, comparing pairs only."""
    return sorted(entries, key=cmp_to_key(_parent_compare))


def topological_order(entries: Iterable[Message]) -> List[Message]:
    """Stable topological order: parents first, ties broken by input position.

    A parent id that is not among the entries makes the message a root.
    Messages caught in a parent cycle are appended in input order.
    """
    items = list(entries)
    index_of: Dict[str, int] = {}
    for i, msg in enumerate(items):
        index_of.setdefault(msg.id, i)

    children: Dict[int, List[int]] = {}
    ready: List[int] = []
    for i, msg in enumerate(items):
        parent_index = index_of.get(msg.parent) if msg.parent is not None else None
        if parent_index is None or parent_index == i:
            ready.append(i)
        else:
            children.setdefault(parent_index, []).append(i)
    heapq.heapify(ready)

    ordered: List[int] = []
    placed = set()
    while ready:
        i = heapq.heappop(ready)
        ordered.append(i)
        placed.add(i)
        for child in children.get(i, []):
            heapq.heappush(ready, child)

    if len(ordered) < len(items):
        logger.warning(
            "Parent cycle among %d messages; keeping them in arrival order",
            len(items) - len(ordered),
        )
        ordered.extend(i for i in range(len(items)) if i not in placed)

    return [items[i] for i in ordered]


class ReconciliationEngine:
    """Merges authoritative batches into a MessageStore and derives render order.

    Args:
        store: The cache to mutate. Only this engine writes authoritative entries.
        optimistic_prefix: Id prefix marking locally generated entries.
        eviction: Optimistic eviction policy ("all" or "matching").
        ordering: Render ordering mode ("pairwise" or "topological").
    """

    def __init__(
        self,
        store: MessageStore,
        optimistic_prefix: str = OPTIMISTIC_ID_PREFIX,
        eviction: EvictionPolicy = "all",
        ordering: OrderingMode = "pairwise",
    ) -> None:
        if eviction not in ("all", "matching"):
            raise ValueError(f"Unknown eviction policy: {eviction!r}")
        if ordering not in ("pairwise", "topological"):
            raise ValueError(f"Unknown ordering mode: {ordering!r}")
        self.store = store
        self.optimistic_prefix = optimistic_prefix
        self.eviction = eviction
        self.ordering = ordering

    def merge(self, batch: Iterable[Message]) -> List[str]:
        """Fold an authoritative batch into the store.

        Args:
            batch: Messages from a ``message_update`` envelope.

        Returns:
            Ids of the optimistic entries evicted by this merge.
        """
        merged = list(batch)
        for msg in merged:
            self.store.put(msg)

        evicted = [
            message_id for message_id in self._eviction_candidates(merged)
            if self.store.delete(message_id) is not None
        ]
        logger.debug(
            "Merged %d message(s), evicted %d optimistic entr%s",
            len(merged), len(evicted), "y" if len(evicted) == 1 else "ies",
        )
        return evicted

    def _eviction_candidates(self, merged: List[Message]) -> List[str]:
        optimistic = [
            msg for msg in self.store.values()
            if is_optimistic_id(msg.id, self.optimistic_prefix)
        ]
        if self.eviction == "all":
            return [msg.id for msg in optimistic]

        confirmed = {
            (msg.role, msg.content) for msg in merged
            if not is_optimistic_id(msg.id, self.optimistic_prefix)
        }
        return [msg.id for msg in optimistic if (msg.role, msg.content) in confirmed]

    def order(self, entries: Optional[Iterable[Message]] = None) -> List[Message]:
        """Derive render order for the given entries (defaults to the whole store)."""
        if entries is None:
            entries = self.store.values()
        if self.ordering == "topological":
            return topological_order(entries)
        return pairwise_order(entries)

    def head(self, ordered: Optional[List[Message]] = None) -> Optional[Message]:
        """Return the most recent message in derived order, if any."""
        if ordered is None:
            ordered = self.order()
        return ordered[-1] if ordered else None
