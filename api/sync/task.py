"""
Generic three-way sync between local identity projections and a remote
("master") collection.

Matching runs an ordered list of matchers. Each matcher is a pair of key
functions; both sides are indexed by key and unmatched items are paired
by key lookup. An item matched by an earlier matcher is not offered to a
later one. Whatever remains unmatched becomes an add (remote side) or a
delete (local side).

Usage:
    task = SyncTask(local_projections, remote_items)
    task.add_matcher("external_id", lambda p: p.external_id, lambda r: r.external_id)
    task.on_delete(remove_fn).on_add(add_fn)
    task.with_load_object_details(load_fn).on_update(update_fn)
    stats = task.start()
"""
import logging
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Generic, Hashable, Iterable, List, NamedTuple, Optional, TypeVar

logger = logging.getLogger(__name__)

E = TypeVar("E")  # local identity projection
M = TypeVar("M")  # remote item


class Matcher(NamedTuple):
    name: str
    existing_key: Callable[[Any], Optional[Hashable]]
    master_key: Callable[[Any], Optional[Hashable]]


@dataclass
class UpdateItem(Generic[E, M]):
    existing_item: E
    master_item: M


@dataclass
class SyncPlan(Generic[E, M]):
    to_add: List[M] = field(default_factory=list)
    to_update: List[UpdateItem] = field(default_factory=list)
    to_delete: List[E] = field(default_factory=list)


@dataclass
class SyncStats:
    added: int = 0
    matched: int = 0
    updated: int = 0
    removed: int = 0

    def as_dict(self) -> Dict[str, int]:
        return {"added": self.added, "matched": self.matched, "updated": self.updated, "removed": self.removed}


class SyncTask(Generic[E, M]):

    def __init__(self, existing_items: Iterable[E], master_items: Iterable[M]):
        self.existing_items = list(existing_items)
        self.master_items = list(master_items)
        self.matchers: List[Matcher] = []
        self._on_add: Optional[Callable[[List[M]], Any]] = None
        self._on_update: Optional[Callable[[List[UpdateItem]], Any]] = None
        self._on_delete: Optional[Callable[[List[E]], Any]] = None
        self._load_object_details: Optional[Callable[[List[UpdateItem]], List[UpdateItem]]] = None

    # ========== Configuration ==========

    def add_matcher(self, name: str, existing_key, master_key) -> "SyncTask":
        self.matchers.append(Matcher(name, existing_key, master_key))
        return self

    def on_add(self, fn: Callable[[List[M]], Any]) -> "SyncTask":
        self._on_add = fn
        return self

    def on_update(self, fn: Callable[[List[UpdateItem]], Any]) -> "SyncTask":
        """fn receives hydrated UpdateItems and may return how many it saved"""
        self._on_update = fn
        return self

    def on_delete(self, fn: Callable[[List[E]], Any]) -> "SyncTask":
        self._on_delete = fn
        return self

    def with_load_object_details(self, fn: Callable[[List[UpdateItem]], List[UpdateItem]]) -> "SyncTask":
        """fn turns projection UpdateItems into UpdateItems holding full local objects"""
        self._load_object_details = fn
        return self

    # ========== Matching ==========

    def plan(self) -> SyncPlan:
        if not self.matchers:
            raise ValueError("SyncTask needs at least one matcher")

        unmatched_existing = set(range(len(self.existing_items)))
        unmatched_master = set(range(len(self.master_items)))
        matches: List[UpdateItem] = []

        for matcher in self.matchers:
            existing_index: Dict[Hashable, int] = {}
            for idx in sorted(unmatched_existing):
                key = matcher.existing_key(self.existing_items[idx])
                if key is not None and key not in existing_index:
                    existing_index[key] = idx

            for idx in sorted(unmatched_master):
                key = matcher.master_key(self.master_items[idx])
                if key is None or key not in existing_index:
                    continue
                existing_idx = existing_index.pop(key)
                unmatched_existing.discard(existing_idx)
                unmatched_master.discard(idx)
                matches.append(UpdateItem(self.existing_items[existing_idx], self.master_items[idx]))

        return SyncPlan(
            to_add=[self.master_items[i] for i in sorted(unmatched_master)],
            to_update=matches,
            to_delete=[self.existing_items[i] for i in sorted(unmatched_existing)],
        )

    # ========== Execution ==========

    def start(self) -> SyncStats:
        plan = self.plan()
        stats = SyncStats(matched=len(plan.to_update))

        logger.debug(f"Sync plan: add={len(plan.to_add)} match={len(plan.to_update)} delete={len(plan.to_delete)}")

        if plan.to_delete and self._on_delete:
            self._on_delete(plan.to_delete)
            stats.removed = len(plan.to_delete)

        if plan.to_add and self._on_add:
            self._on_add(plan.to_add)
            stats.added = len(plan.to_add)

        if plan.to_update and self._on_update:
            update_items = plan.to_update
            if self._load_object_details:
                update_items = self._load_object_details(update_items)
            saved = self._on_update(update_items)
            stats.updated = saved if isinstance(saved, int) else len(update_items)

        return stats
