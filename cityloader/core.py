"""
GeoNames Firestore Loader - Resumable batched upload
Streams a processed cities file into Firestore, one atomic batch at a time
"""
from __future__ import annotations
import asyncio
from dataclasses import dataclass, replace
from typing import Any, AsyncIterator, Dict, Iterable, List, Optional, Protocol, Sequence, Union

from .config import DEFAULT_BATCH_SIZE, MAX_RESUME_ORDINAL, validate_batch_size
from .store import BatchStore

ID_FIELD = "id"


@dataclass(frozen=True)
class Checkpoint:
    """
    Last batch boundary known to be committed.

    Normally moved only by a successful commit. When a run resumes, the
    resume point itself becomes the first checkpoint (with uploaded=0) even
    though this run committed nothing there: an earlier run did, and a
    failure on the next commit can then name a position to resume from.
    """
    last_ordinal: int = 0
    last_id: Optional[str] = None
    skipped: int = 0
    uploaded: int = 0


@dataclass(frozen=True)
class ProgressEvent:
    uploaded: int        # records behind the checkpoint, skipped ones included
    total: int           # records in the whole file
    run_uploaded: int    # committed during this run
    run_total: int       # records left after the resume point
    skipped: int
    last_ordinal: int
    last_id: Optional[str]

    @property
    def percentage(self) -> float:
        """Share of the whole file behind the checkpoint"""
        return 100.0 * self.uploaded / self.total if self.total else 100.0

    @property
    def run_percentage(self) -> float:
        return 100.0 * self.run_uploaded / self.run_total if self.run_total else 100.0

    @property
    def checkpoint(self) -> Checkpoint:
        return Checkpoint(self.last_ordinal, self.last_id, self.skipped, self.run_uploaded)


class ProgressObserver(Protocol):
    def on_progress(self, event: ProgressEvent) -> None: ...


class ProgressLog:
    """Observer that keeps every event; the last one is the latest checkpoint"""

    def __init__(self):
        self.events: List[ProgressEvent] = []

    def on_progress(self, event: ProgressEvent) -> None:
        self.events.append(event)

    @property
    def last(self) -> Optional[ProgressEvent]:
        return self.events[-1] if self.events else None


class UploadError(RuntimeError):
    """A batch commit failed. `checkpoint` is where a new run can resume."""

    def __init__(self, checkpoint: Checkpoint, cause: BaseException, final: bool = False):
        self.checkpoint = checkpoint
        self.cause = cause
        which = "final batch" if final else "batch"
        super().__init__(
            f"Failed to commit {which}. Last successfully uploaded record index: "
            f"{checkpoint.last_ordinal}, ID: {checkpoint.last_id or 'none'}. Error: {cause}"
        )


@dataclass(frozen=True)
class ResumeDirective:
    """Skip records up to and including an ordinal or a record id"""
    from_ordinal: Optional[int] = None
    from_id: Optional[str] = None

    def __post_init__(self):
        if self.from_ordinal is not None and self.from_id is not None:
            raise ValueError("Resume from an ordinal or from an id, not both")
        if self.from_ordinal is None and self.from_id is None:
            raise ValueError("Resume directive needs an ordinal or an id")
        if self.from_ordinal is not None and (
            isinstance(self.from_ordinal, bool) or not isinstance(self.from_ordinal, int)
            or self.from_ordinal < 1
        ):
            raise ValueError(f"Resume ordinal must be a positive integer, got {self.from_ordinal!r}")
        if self.from_id is not None:
            object.__setattr__(self, "from_id", str(self.from_id))

    @classmethod
    def parse(cls, value: Optional[str]) -> Optional["ResumeDirective"]:
        """
        Interpret operator input: a number in 1..MAX_RESUME_ORDINAL-1 is an
        ordinal, anything else is a city id. Empty means no resume.
        """
        if value is None or not str(value).strip():
            return None
        text = str(value).strip()
        if text.isdigit() and 0 < int(text) < MAX_RESUME_ORDINAL:
            return cls(from_ordinal=int(text))
        return cls(from_id=text)

    def reached_by(self, ordinal: int, record: Dict[str, Any]) -> bool:
        if self.from_ordinal is not None:
            return ordinal >= self.from_ordinal
        return str(record.get(ID_FIELD)) == self.from_id

    def __str__(self):
        if self.from_ordinal is not None:
            return f"record index {self.from_ordinal}"
        return f"city ID {self.from_id}"


@dataclass(frozen=True)
class UploadResult:
    uploaded: int
    last_id: Optional[str]
    last_ordinal: int
    skipped: int = 0
    total: int = 0


Record = Dict[str, Any]
_DONE = object()


class AsyncRecordSource(Protocol):
    def __aiter__(self) -> AsyncIterator[Record]: ...


RecordSource = Union[Iterable[Record], AsyncRecordSource]


async def aiter_records(source: RecordSource) -> AsyncIterator[Record]:
    """
    Walk `source` without blocking the event loop. Async iterables are
    awaited directly. Other iterables, in-memory lists aside, are advanced
    in the default executor since they may do blocking I/O.
    """
    if hasattr(source, "__aiter__"):
        async for record in source:
            yield record
    elif isinstance(source, (list, tuple)):
        for record in source:
            yield record
    else:
        loop = asyncio.get_running_loop()
        it = iter(source)
        while True:
            record = await loop.run_in_executor(None, next, it, _DONE)
            if record is _DONE:
                break
            yield record


async def count_records(source: RecordSource) -> int:
    n = 0
    async for _ in aiter_records(source):
        n += 1
    return n


class BatchLoader:
    """
    Resumable, checkpointed batch upload.

    Usage:
        store = FirestoreStore().initialize("credentials.json")
        loader = BatchLoader(store, "cities", batch_size=400, observers=[ProgressLog()])
        result = await loader.run(JsonArrayFile("data/processed-cities15000.json"))

        # after an UploadError e:
        await loader.run(source, ResumeDirective(from_ordinal=e.checkpoint.last_ordinal))

    `source` must be re-iterable, sync or async: it is walked once to count
    records and once more to upload them. Reading never blocks the event
    loop (see `aiter_records`). Batches are committed strictly in order and
    the checkpoint only moves after a commit succeeds.
    """

    def __init__(
        self,
        store: BatchStore,
        collection: str,
        batch_size: int = DEFAULT_BATCH_SIZE,
        observers: Sequence[ProgressObserver] = (),
    ):
        self.store = store
        self.collection = collection
        self.batch_size = validate_batch_size(batch_size)
        self.observers = list(observers)

    def subscribe(self, observer: ProgressObserver):
        self.observers.append(observer)

    async def run(
        self,
        source: RecordSource,
        resume: Optional[ResumeDirective] = None,
    ) -> UploadResult:
        total = await count_records(source)

        started = resume is None
        ordinal = 0
        skipped = 0
        run_total = total
        checkpoint = Checkpoint()

        batch = None
        batch_ids: List[str] = []

        async for record in aiter_records(source):
            ordinal += 1

            if not started:
                skipped += 1
                if resume.reached_by(ordinal, record):
                    started = True
                    run_total = total - skipped
                    # the resume point itself counts as committed by an earlier run
                    checkpoint = Checkpoint(ordinal, str(record.get(ID_FIELD)), skipped, 0)
                continue

            if batch is None:
                batch = self.store.batch(self.collection)
            doc_id = str(record[ID_FIELD])
            batch.set(doc_id, record)
            batch_ids.append(doc_id)

            if len(batch_ids) >= self.batch_size:
                checkpoint = await self._commit(batch, batch_ids, ordinal, checkpoint, total, run_total)
                batch, batch_ids = None, []

        if not started:
            # resume point never reached: nothing to upload
            return UploadResult(0, None, skipped, skipped, total)

        if batch_ids:
            checkpoint = await self._commit(
                batch, batch_ids, ordinal, checkpoint, total, run_total, final=True
            )

        return UploadResult(
            checkpoint.uploaded, checkpoint.last_id, checkpoint.last_ordinal, skipped, total
        )

    async def _commit(self, batch, batch_ids, ordinal, checkpoint, total, run_total, final=False):
        try:
            await batch.commit()
        except Exception as e:
            raise UploadError(checkpoint, e, final=final) from e

        checkpoint = replace(
            checkpoint,
            last_ordinal=ordinal,
            last_id=batch_ids[-1],
            uploaded=checkpoint.uploaded + len(batch_ids),
        )
        self._notify(ProgressEvent(
            uploaded=checkpoint.skipped + checkpoint.uploaded,
            total=total,
            run_uploaded=checkpoint.uploaded,
            run_total=run_total,
            skipped=checkpoint.skipped,
            last_ordinal=checkpoint.last_ordinal,
            last_id=checkpoint.last_id,
        ))
        return checkpoint

    def _notify(self, event: ProgressEvent):
        for observer in self.observers:
            observer.on_progress(event)
