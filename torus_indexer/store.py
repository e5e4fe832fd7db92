# torus_indexer/store.py
from __future__ import annotations

import asyncio
import json
import os
import tempfile
import time
import uuid
from contextlib import asynccontextmanager
from pathlib import Path
from typing import Any, AsyncIterator, Dict, List, Optional, Protocol, Sequence, Set, runtime_checkable

import bittensor as bt

from torus_indexer.errors import StoreError
from torus_indexer.models import (
    ENTITY_KINDS,
    Block,
    DelegationEvent,
    Entity,
    Event,
    Extrinsic,
    Transfer,
)

# History kinds: rows are written once per block and never mutated afterwards.
APPEND_ONLY_KINDS = frozenset({Block.KIND, Event.KIND, Extrinsic.KIND, Transfer.KIND, DelegationEvent.KIND})
_TOMBSTONE = "_deleted"


@runtime_checkable
class EntityStore(Protocol):
    async def get(self, kind: str, key: str) -> Optional[Entity]: ...

    def create(self, kind: str, **fields: Any) -> Entity: ...

    async def save(self, entity: Entity) -> None: ...

    async def remove(self, kind: str, key: str) -> None: ...

    async def bulk_create(self, kind: str, entities: Sequence[Entity]) -> None: ...

    async def get_by_field(self, kind: str, field: str, value: Any) -> List[Entity]: ...

    async def all(self, kind: str) -> List[Entity]: ...

    def batch(self): ...


def _entity_class(kind: str):
    try:
        return ENTITY_KINDS[kind]
    except KeyError:
        raise StoreError(f"unknown entity kind {kind!r}") from None


class MemoryStore:
    """
    Async entity store backed by dicts of serialised rows.

    Rows are stored as `to_dict()` copies, so an entity loaded with `get()`
    and mutated is not visible to other readers until it is `save()`d.
    """

    def __init__(self) -> None:
        self._rows: Dict[str, Dict[str, Dict[str, Any]]] = {kind: {} for kind in ENTITY_KINDS}
        self._lock = asyncio.Lock()

    # ---------- read ----------
    async def get(self, kind: str, key: str) -> Optional[Entity]:
        cls = _entity_class(kind)
        row = self._rows[kind].get(key)
        return cls.from_dict(row) if row is not None else None

    async def get_by_field(self, kind: str, field: str, value: Any) -> List[Entity]:
        cls = _entity_class(kind)
        return [cls.from_dict(row) for row in self._rows[kind].values() if row.get(field) == value]

    async def all(self, kind: str) -> List[Entity]:
        cls = _entity_class(kind)
        return [cls.from_dict(row) for row in self._rows[kind].values()]

    async def count(self, kind: str) -> int:
        _entity_class(kind)
        return len(self._rows[kind])

    # ---------- write ----------
    def create(self, kind: str, **fields: Any) -> Entity:
        """Build an entity of *kind*; it is not persisted until saved."""
        cls = _entity_class(kind)
        if not fields.get("id"):
            raise StoreError(f"{kind} requires a non-empty id")
        return cls(**fields)

    async def save(self, entity: Entity) -> None:
        async with self._lock:
            row = self._put(entity)
            await self._written(entity.KIND, [row], ())

    async def remove(self, kind: str, key: str) -> None:
        _entity_class(kind)
        async with self._lock:
            if self._rows[kind].pop(key, None) is not None:
                await self._written(kind, (), (key,))

    async def bulk_create(self, kind: str, entities: Sequence[Entity]) -> None:
        """Upsert every entity of *kind* in one write."""
        _entity_class(kind)
        if not entities:
            return
        for entity in entities:
            if entity.KIND != kind:
                raise StoreError(f"bulk_create({kind}) got a {entity.KIND} entity")
        async with self._lock:
            rows = [self._put(entity) for entity in entities]
            await self._written(kind, rows, ())

    @asynccontextmanager
    async def batch(self) -> AsyncIterator["MemoryStore"]:
        """Group the writes of one unit of work; nothing to defer in memory."""
        yield self

    def _put(self, entity: Entity) -> Dict[str, Any]:
        if not getattr(entity, "id", None):
            raise StoreError(f"cannot save {entity.KIND} without an id")
        row = entity.to_dict()
        self._rows[entity.KIND][entity.id] = row  # type: ignore[attr-defined]
        return row

    async def _written(self, kind: str, rows: Sequence[Dict[str, Any]], removed: Sequence[str]) -> None:
        """Persistence hook; the in-memory store has nothing to write."""
        return None


class JsonFileStore(MemoryStore):
    """
    MemoryStore persisted under `root`.

    History kinds (blocks, events, extrinsics, transfers, delegation events)
    live in `<Kind>.jsonl` logs that only ever get appended to, so the cost of
    a write does not grow with the chain. Mutable state kinds live in
    `<Kind>.json`, rewritten through a temp file + `os.replace`.

    Inside `batch()` writes are buffered and committed once when the batch
    exits; a batch that raises is discarded and memory is reloaded from disk.
    """

    def __init__(self, root: Path | str) -> None:
        super().__init__()
        self.root = Path(root)
        self.root.mkdir(parents=True, exist_ok=True)
        self._appends: Dict[str, List[Dict[str, Any]]] = {kind: [] for kind in APPEND_ONLY_KINDS}
        self._dirty: Set[str] = set()
        self._batch_depth = 0
        self._load_all()
        total = sum(len(rows) for rows in self._rows.values())
        bt.logging.info(f"[store] loaded {total} records from {self.root}")

    # ---------- paths / loading ----------
    def _path(self, kind: str) -> Path:
        suffix = ".jsonl" if kind in APPEND_ONLY_KINDS else ".json"
        return self.root / f"{kind}{suffix}"

    def _load_all(self) -> None:
        for kind in ENTITY_KINDS:
            self._rows[kind] = self._load_log(kind) if kind in APPEND_ONLY_KINDS else self._load_kind(kind)

    def _load_kind(self, kind: str) -> Dict[str, Dict[str, Any]]:
        path = self._path(kind)
        if not path.exists():
            return {}
        try:
            data = json.loads(path.read_text(encoding="utf-8"))
        except (OSError, ValueError) as e:
            raise StoreError(f"could not read {path}: {e}") from e
        if not isinstance(data, dict):
            raise StoreError(f"{path} does not hold a JSON object")
        return data

    def _load_log(self, kind: str) -> Dict[str, Dict[str, Any]]:
        path = self._path(kind)
        if not path.exists():
            return {}
        try:
            lines = path.read_text(encoding="utf-8").splitlines()
        except OSError as e:
            raise StoreError(f"could not read {path}: {e}") from e

        rows: Dict[str, Dict[str, Any]] = {}
        for n, line in enumerate(lines):
            if not line.strip():
                continue
            try:
                row = json.loads(line)
            except ValueError as e:
                # a crash mid-append can only tear the final line
                if n == len(lines) - 1:
                    bt.logging.warning(f"[store] dropping torn last line of {path}")
                    break
                raise StoreError(f"{path}:{n + 1}: {e}") from e
            if not isinstance(row, dict) or "id" not in row:
                raise StoreError(f"{path}:{n + 1}: not a record")
            if row.get(_TOMBSTONE):
                rows.pop(row["id"], None)
            else:
                rows[row["id"]] = row
        return rows

    # ---------- writing ----------
    def _atomic_write_text(self, path: Path, text: str) -> None:
        tmp_suffix = f".tmp.{os.getpid()}.{int(time.time() * 1000)}.{uuid.uuid4().hex[:6]}"
        with tempfile.NamedTemporaryFile(
            mode="w",
            encoding="utf-8",
            dir=str(path.parent),
            prefix=path.name + ".",
            suffix=tmp_suffix,
            delete=False,
        ) as tmp:
            tmp.write(text)
            tmp.flush()
            os.fsync(tmp.fileno())
            tmp_path = Path(tmp.name)
        os.replace(tmp_path, path)

    def _append_lines(self, path: Path, rows: Sequence[Dict[str, Any]]) -> None:
        text = "".join(json.dumps(row, sort_keys=True) + "\n" for row in rows)
        with open(path, "a", encoding="utf-8") as fh:
            fh.write(text)
            fh.flush()
            os.fsync(fh.fileno())

    async def _written(self, kind: str, rows: Sequence[Dict[str, Any]], removed: Sequence[str]) -> None:
        if kind in APPEND_ONLY_KINDS:
            self._appends[kind].extend(rows)
            self._appends[kind].extend({"id": key, _TOMBSTONE: True} for key in removed)
        else:
            self._dirty.add(kind)
        if self._batch_depth == 0:
            await self._commit()

    async def _commit(self) -> None:
        appends = {kind: rows for kind, rows in self._appends.items() if rows}
        dirty = sorted(self._dirty)
        self._appends = {kind: [] for kind in APPEND_ONLY_KINDS}
        self._dirty = set()

        for kind, rows in appends.items():
            path = self._path(kind)
            try:
                await asyncio.to_thread(self._append_lines, path, rows)
            except OSError as e:
                bt.logging.error(f"[store] failed to append to {path}: {e}")
                raise StoreError(f"failed to append to {path}: {e}") from e
        for kind in dirty:
            path = self._path(kind)
            text = json.dumps(self._rows[kind], sort_keys=True)
            try:
                await asyncio.to_thread(self._atomic_write_text, path, text)
            except OSError as e:
                bt.logging.error(f"[store] failed to write {path}: {e}")
                raise StoreError(f"failed to write {path}: {e}") from e

    @asynccontextmanager
    async def batch(self) -> AsyncIterator["JsonFileStore"]:
        self._batch_depth += 1
        try:
            yield self
        except BaseException:
            self._batch_depth -= 1
            if self._batch_depth == 0:
                async with self._lock:
                    self._appends = {kind: [] for kind in APPEND_ONLY_KINDS}
                    self._dirty = set()
                    self._load_all()
                bt.logging.warning(f"[store] batch aborted; reloaded {self.root}")
            raise
        self._batch_depth -= 1
        if self._batch_depth == 0:
            async with self._lock:
                await self._commit()
