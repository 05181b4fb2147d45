"""Tests for the file-backed job store and the job model helpers."""

import threading

import pytest

from podflow.jobs.errors import JobNotFoundError
from podflow.jobs.models import (
    ItemPick,
    ItemResult,
    ItemStatus,
    ItemStep,
    Job,
    JobParams,
    JobStatus,
    sanitize_error,
)
from podflow.jobs.store import FileJobStore

SHOP_ID = "shop-1"


def _params(**kw):
    return JobParams(prompt="funny dog", **kw)


# ---------------------------------------------------------------------------
# FileJobStore
# ---------------------------------------------------------------------------

def test_create_and_get_roundtrip(store):
    job = store.create_job(_params(style="retro"), total=3, owner=SHOP_ID)

    assert job.id.startswith("job_")
    assert len(job.id) == len("job_") + 16
    loaded = store.get_job(job.id)
    assert loaded.status is JobStatus.QUEUED
    assert loaded.total == 3
    assert (loaded.completed, loaded.failed, loaded.next_index) == (0, 0, 0)
    assert loaded.params.style == "retro"
    assert loaded.owner_ref == SHOP_ID


def test_get_unknown_job_raises(store):
    with pytest.raises(JobNotFoundError) as exc:
        store.get_job("job_missing")
    assert exc.value.job_id == "job_missing"


def test_update_unknown_job_raises(store):
    with pytest.raises(JobNotFoundError):
        store.update_job("job_missing", completed=1)


def test_update_rejects_unknown_fields(store):
    job = store.create_job(_params(), total=1, owner=SHOP_ID)
    with pytest.raises(ValueError):
        store.update_job(job.id, total=10)


def test_update_is_partial_and_bumps_updated_at(store):
    job = store.create_job(_params(), total=2, owner=SHOP_ID)
    item = ItemResult(index=1, step=ItemStep.PRODUCT_CREATED, status=ItemStatus.CREATED, product_id="p1")

    updated = store.update_job(job.id, completed=1, next_index=1, results=[item])

    assert updated.completed == 1
    assert updated.failed == 0
    assert updated.status is JobStatus.QUEUED
    assert updated.results == [item]
    assert updated.updated_at >= job.updated_at
    assert store.get_job(job.id).results[0].product_id == "p1"


def test_results_accept_plain_dicts(store):
    job = store.create_job(_params(), total=1, owner=SHOP_ID)
    updated = store.update_job(job.id, results=[{"index": 1, "message": "Starting item"}])
    assert updated.results[0].step is ItemStep.INIT


def test_terminal_status_is_sticky(store):
    job = store.create_job(_params(), total=2, owner=SHOP_ID)
    store.update_job(job.id, status=JobStatus.IN_PROGRESS)
    store.update_job(job.id, status=JobStatus.CANCELLED)

    after = store.update_job(job.id, status=JobStatus.COMPLETED, completed=1, next_index=1)

    assert after.status is JobStatus.CANCELLED
    assert after.completed == 1


def test_status_cannot_move_backwards(store):
    job = store.create_job(_params(), total=1, owner=SHOP_ID)
    store.update_job(job.id, status=JobStatus.IN_PROGRESS)
    assert store.update_job(job.id, status=JobStatus.QUEUED).status is JobStatus.IN_PROGRESS


def test_jobs_survive_a_new_store_instance(tmp_path):
    first = FileJobStore(tmp_path)
    job = first.create_job(_params(), total=1, owner=SHOP_ID)
    first.update_job(job.id, status=JobStatus.IN_PROGRESS, next_index=1)

    second = FileJobStore(tmp_path)
    loaded = second.get_job(job.id)
    assert loaded.status is JobStatus.IN_PROGRESS
    assert loaded.next_index == 1


def test_no_temp_files_left_behind(store, tmp_path):
    job = store.create_job(_params(), total=1, owner=SHOP_ID)
    store.update_job(job.id, completed=1)
    leftovers = [p.name for p in (tmp_path / "jobs").iterdir() if p.name.startswith(".tmp_")]
    assert leftovers == []


def test_update_waits_for_another_instance_holding_the_job(tmp_path):
    worker = FileJobStore(tmp_path)
    cli = FileJobStore(tmp_path)
    job = worker.create_job(_params(), total=3, owner=SHOP_ID)
    worker.update_job(job.id, status=JobStatus.IN_PROGRESS)

    cancel = threading.Thread(target=cli.update_job, args=(job.id,), kwargs={"status": JobStatus.CANCELLED})
    with worker._locked(job.id):
        cancel.start()
        cancel.join(timeout=0.3)
        assert cancel.is_alive()
        assert worker.get_job(job.id).status is JobStatus.IN_PROGRESS
    cancel.join(timeout=5)

    assert not cancel.is_alive()
    assert worker.get_job(job.id).status is JobStatus.CANCELLED


def test_progress_write_keeps_a_cancel_from_another_instance(tmp_path):
    worker = FileJobStore(tmp_path)
    cli = FileJobStore(tmp_path)
    job = worker.create_job(_params(), total=3, owner=SHOP_ID)
    worker.update_job(job.id, status=JobStatus.IN_PROGRESS)

    cli.update_job(job.id, status=JobStatus.CANCELLED)
    after = worker.update_job(job.id, completed=1, next_index=1)

    assert after.status is JobStatus.CANCELLED
    assert after.completed == 1


def test_list_jobs_newest_first_and_by_owner(store):
    a = store.create_job(_params(), total=1, owner="shop-a")
    b = store.create_job(_params(), total=1, owner="shop-b")
    c = store.create_job(_params(), total=1, owner="shop-a")

    jobs = store.list_jobs()
    assert {j.id for j in jobs} == {a.id, b.id, c.id}
    assert [j.created_at for j in jobs] == sorted((j.created_at for j in jobs), reverse=True)
    assert {j.id for j in store.list_jobs(owner="shop-a")} == {a.id, c.id}
    assert len(store.list_jobs(limit=2)) == 2


# ---------------------------------------------------------------------------
# Models
# ---------------------------------------------------------------------------

@pytest.mark.parametrize(
    "current,target,allowed",
    [
        (JobStatus.QUEUED, JobStatus.IN_PROGRESS, True),
        (JobStatus.QUEUED, JobStatus.CANCELLED, True),
        (JobStatus.QUEUED, JobStatus.QUEUED, False),
        (JobStatus.IN_PROGRESS, JobStatus.COMPLETED, True),
        (JobStatus.IN_PROGRESS, JobStatus.FAILED, True),
        (JobStatus.IN_PROGRESS, JobStatus.CANCELLED, True),
        (JobStatus.IN_PROGRESS, JobStatus.QUEUED, False),
        (JobStatus.COMPLETED, JobStatus.CANCELLED, False),
        (JobStatus.CANCELLED, JobStatus.IN_PROGRESS, False),
        (JobStatus.FAILED, JobStatus.COMPLETED, False),
    ],
)
def test_status_transitions(current, target, allowed):
    assert current.can_transition(target) is allowed


def test_sanitize_error():
    assert sanitize_error("bad\x00thing\nhappened\t") == "bad thing happened"
    assert len(sanitize_error("x" * 900)) == 500
    assert sanitize_error(None) == ""
    assert sanitize_error(ValueError("boom")) == "boom"


def test_item_result_sanitizes_errors():
    r = ItemResult(index=1, error="a\nb", publish_error="c\r\nd", message="m\x07")
    assert r.error == "a b"
    assert r.publish_error == "c  d"
    assert r.message == "m"


def test_item_result_index_is_one_based():
    with pytest.raises(ValueError):
        ItemResult(index=0)


def test_with_result_replaces_by_index():
    job = Job(
        id="job_x",
        params=_params(),
        total=3,
        results=[ItemResult(index=2, message="old"), ItemResult(index=1)],
    )
    merged = job.with_result(ItemResult(index=2, message="new"))
    assert [r.index for r in merged] == [1, 2]
    assert merged[1].message == "new"
    assert job.with_result(ItemResult(index=3))[-1].index == 3


def test_summary_shape():
    job = Job(id="job_x", params=_params(), total=2, completed=1)
    assert job.summary() == {"job_id": "job_x", "status": "queued", "total": 2, "completed": 1, "failed": 0}


def test_pick_for_falls_back_to_job_hints():
    params = _params(
        blueprint_id=5,
        provider_id="1",
        print_areas=["Front"],
        selected_picks=[ItemPick(blueprint_id=77, provider_id=29, print_areas=["BACK"])],
    )
    first = params.pick_for(0)
    second = params.pick_for(1)

    assert (first.blueprint_id, first.provider_id, first.print_areas) == ("77", "29", ["back"])
    assert (second.blueprint_id, second.provider_id, second.print_areas) == ("5", "1", ["front"])


def test_wants_transparent():
    assert _params(remove_bg=True).wants_transparent
    assert _params(background="transparent").wants_transparent
    assert not _params(background="white").wants_transparent


def test_params_are_immutable():
    params = _params()
    with pytest.raises(ValueError):
        params.prompt = "other"
