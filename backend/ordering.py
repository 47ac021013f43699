# ordering.py — Dense position management for sibling rows
"""
Columns are ordered within their board and tasks within their column. Every
sibling set keeps its positions dense: exactly 0..N-1, no gaps, no duplicates.

Both operations here run inside the caller's transaction and only flush; the
caller commits. Sibling rows are read with SELECT ... FOR UPDATE so that, on
PostgreSQL, a concurrent reorder of the same set waits for this transaction.
Within one process the `board_locks` registry serialises writers per board.
"""
import asyncio
import logging
from collections import defaultdict
from contextlib import asynccontextmanager
from dataclasses import dataclass
from typing import Dict, Hashable, List

from sqlalchemy import select, func
from sqlalchemy.ext.asyncio import AsyncSession

from models import BoardColumn, Task

logger = logging.getLogger("taskboard.ordering")


@dataclass(frozen=True)
class SiblingScope:
    """All rows of `model` whose `parent_attr` equals `parent_id`"""
    model: type
    parent_attr: str
    parent_id: int

    @property
    def parent_column(self):
        return getattr(self.model, self.parent_attr)

    def __str__(self) -> str:
        return f"{self.model.__tablename__}[{self.parent_attr}={self.parent_id}]"


def column_scope(board_id: int) -> SiblingScope:
    return SiblingScope(BoardColumn, "board_id", board_id)


def task_scope(column_id: int) -> SiblingScope:
    return SiblingScope(Task, "column_id", column_id)


async def load_siblings(db: AsyncSession, scope: SiblingScope) -> List:
    """Siblings ordered by (position, id); ties on position resolve by id."""
    # autoflush is off; re-parented rows must be visible to the query
    await db.flush()
    model = scope.model
    stmt = (
        select(model)
        .where(scope.parent_column == scope.parent_id)
        .order_by(model.position.asc(), model.id.asc())
        .with_for_update()
        .execution_options(populate_existing=True)
    )
    result = await db.execute(stmt)
    return list(result.scalars().all())


async def next_position(db: AsyncSession, scope: SiblingScope) -> int:
    """Position for a row appended to the end of the scope"""
    stmt = select(func.count(scope.model.id)).where(scope.parent_column == scope.parent_id)
    result = await db.execute(stmt)
    return result.scalar() or 0


def _apply_ranks(rows: List) -> int:
    changed = 0
    for rank, row in enumerate(rows):
        if row.position != rank:
            row.position = rank
            changed += 1
    return changed


async def normalize(db: AsyncSession, scope: SiblingScope) -> List[int]:
    """Rewrite positions to 0..N-1 in (position, id) order. Idempotent."""
    rows = await load_siblings(db, scope)
    changed = _apply_ranks(rows)
    if changed:
        await db.flush()
        logger.debug(f"normalize {scope}: {changed} of {len(rows)} positions rewritten")
    return [row.id for row in rows]


async def insert_at_position(
    db: AsyncSession,
    scope: SiblingScope,
    target_id: int,
    requested_position: int,
) -> List[int]:
    """Place `target_id` at `requested_position` and renumber the whole scope.

    The position is clamped into [0, N-1]; out-of-range values never raise.
    The target must already belong to the scope (a task being moved is
    re-parented before this is called).
    """
    rows = await load_siblings(db, scope)
    target = next((row for row in rows if row.id == target_id), None)
    if target is None:
        raise ValueError(f"{scope.model.__name__} {target_id} is not in {scope}")

    remaining = [row for row in rows if row.id != target_id]
    index = max(0, min(int(requested_position), len(remaining)))
    remaining.insert(index, target)

    changed = _apply_ranks(remaining)
    await db.flush()
    logger.debug(f"insert {target_id} at {index} in {scope}: {changed} positions rewritten")
    return [row.id for row in remaining]


class ScopeLocks:
    """Per-key asyncio locks; one writer per key at a time within this process.

    Locks are created on demand and dropped once nobody holds or waits on them.
    """

    def __init__(self):
        self._locks: Dict[Hashable, asyncio.Lock] = {}
        self._refs: Dict[Hashable, int] = defaultdict(int)

    def __len__(self) -> int:
        return len(self._locks)

    def locked(self, key: Hashable) -> bool:
        lock = self._locks.get(key)
        return lock is not None and lock.locked()

    def _checkout(self, key: Hashable) -> asyncio.Lock:
        lock = self._locks.get(key)
        if lock is None:
            lock = self._locks[key] = asyncio.Lock()
        self._refs[key] += 1
        return lock

    def _checkin(self, key: Hashable) -> None:
        self._refs[key] -= 1
        if self._refs[key] <= 0:
            del self._refs[key]
            del self._locks[key]

    @asynccontextmanager
    async def hold(self, *keys: Hashable):
        # sorted acquisition order keeps multi-key holders deadlock free
        ordered = sorted(set(keys))
        locks = [self._checkout(key) for key in ordered]
        held = []
        try:
            for lock in locks:
                await lock.acquire()
                held.append(lock)
            yield
        finally:
            for lock in reversed(held):
                lock.release()
            for key in ordered:
                self._checkin(key)


board_locks = ScopeLocks()
