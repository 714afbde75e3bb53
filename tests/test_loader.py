import asyncio
import json
import time

import pytest

from cityloader.core import (
    BatchLoader, Checkpoint, ProgressLog, ResumeDirective, UploadError, UploadResult,
)
from cityloader.scanner import JsonArrayFile

from conftest import FakeStore


def _run(loader, source, resume=None):
    return asyncio.run(loader.run(source, resume))


def test_uploads_everything_in_batches(fake_store, records):
    log = ProgressLog()
    loader = BatchLoader(fake_store, "cities", batch_size=2, observers=[log])
    result = _run(loader, records)

    assert result == UploadResult(uploaded=5, last_id="5", last_ordinal=5, skipped=0, total=5)
    assert fake_store.committed == [["1", "2"], ["3", "4"], ["5"]]
    assert fake_store.collections == {"cities"}
    assert set(fake_store.docs) == {"1", "2", "3", "4", "5"}

    assert [e.last_ordinal for e in log.events] == [2, 4, 5]
    assert [e.last_id for e in log.events] == ["2", "4", "5"]
    last = log.last
    assert (last.uploaded, last.total, last.run_uploaded, last.run_total) == (5, 5, 5, 5)
    assert last.percentage == 100.0


def test_subscribed_observers_see_every_batch(fake_store, records):
    first, second = ProgressLog(), ProgressLog()
    loader = BatchLoader(fake_store, "cities", batch_size=3, observers=[first])
    loader.subscribe(second)
    _run(loader, records)
    assert first.events == second.events
    assert [e.checkpoint.uploaded for e in second.events] == [3, 5]


def test_failed_batch_reports_last_checkpoint_then_resume_finishes(records):
    store = FakeStore(fail_on={2})
    loader = BatchLoader(store, "cities", batch_size=2)

    with pytest.raises(UploadError) as info:
        _run(loader, records)

    cp = info.value.checkpoint
    assert cp == Checkpoint(last_ordinal=2, last_id="2", skipped=0, uploaded=2)
    assert "record index: 2, ID: 2" in str(info.value)
    assert "quota exceeded" in str(info.value)
    assert isinstance(info.value.__cause__, RuntimeError)
    assert set(store.docs) == {"1", "2"}

    store.fail_on.clear()
    store.committed.clear()
    result = _run(loader, records, ResumeDirective(from_ordinal=cp.last_ordinal))

    assert result.uploaded == 3
    assert result.skipped == 2
    assert store.committed == [["3", "4"], ["5"]]
    assert set(store.docs) == {"1", "2", "3", "4", "5"}


def test_final_batch_failure(records):
    store = FakeStore(fail_on={3})
    loader = BatchLoader(store, "cities", batch_size=2)
    with pytest.raises(UploadError) as info:
        _run(loader, records)
    assert info.value.checkpoint.last_ordinal == 4
    assert info.value.checkpoint.uploaded == 4
    assert "final batch" in str(info.value)


def test_failure_before_any_commit(records):
    store = FakeStore(fail_on={1})
    loader = BatchLoader(store, "cities", batch_size=10)
    with pytest.raises(UploadError) as info:
        _run(loader, records)
    assert info.value.checkpoint == Checkpoint()
    assert "ID: none" in str(info.value)
    assert store.docs == {}


def test_resume_by_ordinal_and_by_id_agree(records):
    by_ordinal, by_id = FakeStore(), FakeStore()
    r1 = _run(BatchLoader(by_ordinal, "cities", batch_size=2), records, ResumeDirective(from_ordinal=3))
    r2 = _run(BatchLoader(by_id, "cities", batch_size=2), records, ResumeDirective(from_id="3"))

    assert by_ordinal.docs == by_id.docs
    assert set(by_ordinal.docs) == {"4", "5"}
    assert r1 == r2 == UploadResult(uploaded=2, last_id="5", last_ordinal=5, skipped=3, total=5)


def test_resume_progress_counts_skipped_records(records):
    log = ProgressLog()
    loader = BatchLoader(FakeStore(), "cities", batch_size=2, observers=[log])
    _run(loader, records, ResumeDirective(from_ordinal=2))

    first = log.events[0]
    assert first.skipped == 2
    assert first.run_uploaded == 2 and first.run_total == 3
    assert first.uploaded == 4 and first.total == 5
    assert first.last_ordinal == 4 and first.last_id == "4"


def test_failure_right_after_resume_points_at_resume_position(records):
    store = FakeStore(fail_on={1})
    loader = BatchLoader(store, "cities", batch_size=2)
    with pytest.raises(UploadError) as info:
        _run(loader, records, ResumeDirective(from_id="2"))
    assert info.value.checkpoint.last_ordinal == 2
    assert info.value.checkpoint.last_id == "2"


@pytest.mark.parametrize("resume", [ResumeDirective(from_ordinal=5), ResumeDirective(from_ordinal=99),
                                    ResumeDirective(from_id="5"), ResumeDirective(from_id="missing")])
def test_resume_past_the_end_uploads_nothing(fake_store, records, resume):
    result = _run(BatchLoader(fake_store, "cities", batch_size=2), records, resume)
    assert result.uploaded == 0
    assert result.skipped == 5
    assert fake_store.batches == 0
    assert fake_store.commits == 0


def test_reupload_is_a_merge_not_a_duplicate(records):
    store = FakeStore()
    store.docs["3"] = {"id": "3", "name": "Old name", "favorite": True}
    loader = BatchLoader(store, "cities", batch_size=2)
    _run(loader, records)
    _run(loader, records, ResumeDirective(from_ordinal=1))

    assert len(store.docs) == 5
    assert store.docs["3"] == {"id": "3", "name": "City 3", "population": 3000, "favorite": True}


def test_numeric_ids_become_string_keys(fake_store):
    _run(BatchLoader(fake_store, "cities", batch_size=3), [{"id": 7}, {"id": 8}])
    assert set(fake_store.docs) == {"7", "8"}


@pytest.mark.parametrize("size", [0, -1, 451, 2.5, True])
def test_batch_size_is_validated_up_front(fake_store, size):
    with pytest.raises(ValueError):
        BatchLoader(fake_store, "cities", batch_size=size)


@pytest.mark.parametrize("size", [1, 450])
def test_batch_size_limits_are_inclusive(fake_store, records, size):
    result = _run(BatchLoader(fake_store, "cities", batch_size=size), records)
    assert result.uploaded == 5


def test_resume_directive_validation():
    with pytest.raises(ValueError):
        ResumeDirective(from_ordinal=2, from_id="2")
    with pytest.raises(ValueError):
        ResumeDirective()
    with pytest.raises(ValueError):
        ResumeDirective(from_ordinal=0)
    assert ResumeDirective(from_id=3530597).from_id == "3530597"


def test_resume_directive_parse():
    assert ResumeDirective.parse(None) is None
    assert ResumeDirective.parse("  ") is None
    assert ResumeDirective.parse("17600") == ResumeDirective(from_ordinal=17600)
    assert ResumeDirective.parse("3530597") == ResumeDirective(from_id="3530597")
    assert ResumeDirective.parse("abc-1") == ResumeDirective(from_id="abc-1")
    assert ResumeDirective.parse("0") == ResumeDirective(from_id="0")


def test_uploads_from_processed_file(tmp_path, fake_store, records):
    path = tmp_path / "processed-cities15000.json"
    path.write_text(json.dumps(records), encoding="utf-8")
    result = _run(BatchLoader(fake_store, "cities", batch_size=4), JsonArrayFile(path))
    assert result.uploaded == 5
    assert fake_store.docs["5"]["population"] == 5000


class SlowRecords:
    """Re-iterable source whose reads block, like a slow disk"""

    def __init__(self, records, delay):
        self.records = records
        self.delay = delay

    def __iter__(self):
        for record in self.records:
            time.sleep(self.delay)
            yield record


class AsyncRecords:
    def __init__(self, records):
        self.records = records

    async def __aiter__(self):
        for record in self.records:
            await asyncio.sleep(0)
            yield record


def test_blocking_source_does_not_stall_other_tasks(fake_store, records):
    ticks = []

    async def ticker():
        while True:
            ticks.append(1)
            await asyncio.sleep(0.005)

    async def main():
        task = asyncio.ensure_future(ticker())
        loader = BatchLoader(fake_store, "cities", batch_size=2)
        result = await loader.run(SlowRecords(records, 0.02))
        task.cancel()
        return result

    result = asyncio.run(main())
    assert result.uploaded == 5
    # two passes over five records at 20 ms each
    assert len(ticks) > 10


def test_async_source(fake_store, records):
    result = _run(BatchLoader(fake_store, "cities", batch_size=2), AsyncRecords(records),
                  ResumeDirective(from_id="1"))
    assert result == UploadResult(uploaded=4, last_id="5", last_ordinal=5, skipped=1, total=5)
    assert fake_store.committed == [["2", "3"], ["4", "5"]]
