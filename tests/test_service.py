"""Tests for the job service: request validation, create/cancel and the run entry point."""

import pytest

from podflow.jobs import service
from podflow.jobs.errors import JobNotFoundError, JobValidationError
from podflow.jobs.models import ItemPick, JobParams, JobStatus


def _params(**kw):
    kw.setdefault("prompt", "funny dog")
    return JobParams(**kw)


# ---------------------------------------------------------------------------
# prepare_params
# ---------------------------------------------------------------------------

@pytest.mark.parametrize("quantity,expected", [(1, 1), (3, 3), (0, 1), (-4, 1), (50, 50), (500, 50)])
def test_quantity_is_clamped(quantity, expected):
    params, total = service.prepare_params(_params(quantity=quantity), max_items=50)
    assert total == expected
    assert params.quantity == expected


def test_valid_picks_set_the_total():
    picks = [
        ItemPick(blueprint_id=5, provider_id=29),
        ItemPick(blueprint_id=77),
        ItemPick(blueprint_id=68, provider_id=1, print_areas=["back"]),
    ]
    params, total = service.prepare_params(_params(quantity=10, selected_picks=picks), max_items=50)
    assert total == 2
    assert [p.blueprint_id for p in params.selected_picks] == ["5", "68"]


def test_picks_are_capped():
    picks = [ItemPick(blueprint_id=i, provider_id=1) for i in range(1, 8)]
    _, total = service.prepare_params(_params(selected_picks=picks), max_items=5)
    assert total == 5


@pytest.mark.parametrize("prompt", ["", "   "])
def test_prompt_is_required(prompt):
    with pytest.raises(JobValidationError, match="prompt"):
        service.prepare_params(_params(prompt=prompt), max_items=50)


def test_prompt_is_trimmed():
    params, _ = service.prepare_params(_params(prompt="  funny dog \n"), max_items=50)
    assert params.prompt == "funny dog"


def test_upload_mode_requires_urls():
    with pytest.raises(JobValidationError, match="upload"):
        service.prepare_params(_params(image_mode="upload", upload_urls=["", "  "]), max_items=50)


def test_upload_urls_are_cleaned():
    params, _ = service.prepare_params(
        _params(image_mode="upload", upload_urls=[" https://cdn.test/a.png ", ""]), max_items=50
    )
    assert params.upload_urls == ["https://cdn.test/a.png"]


@pytest.mark.parametrize("markup", [-1, 1000.5])
def test_markup_out_of_range(markup):
    with pytest.raises(JobValidationError, match="markup"):
        service.prepare_params(_params(markup=markup), max_items=50)


# ---------------------------------------------------------------------------
# create / get / cancel / list
# ---------------------------------------------------------------------------

def test_create_job_persists_and_marks_in_progress(store, settings):
    job = service.create_job(_params(quantity=3), shop_id="shop-9", store=store, settings=settings)

    assert job.status is JobStatus.IN_PROGRESS
    assert job.total == 3
    assert job.owner_ref == "shop-9"
    assert store.get_job(job.id).status is JobStatus.IN_PROGRESS


def test_create_job_falls_back_to_configured_shop(store, settings, shop_id):
    job = service.create_job(_params(), store=store, settings=settings)
    assert job.owner_ref == shop_id


def test_create_job_without_any_shop_is_rejected(store, settings):
    settings.printify_shop_id = None
    with pytest.raises(JobValidationError, match="shopId"):
        service.create_job(_params(), store=store, settings=settings)
    assert store.list_jobs() == []


def test_create_job_respects_max_items_setting(store, settings):
    settings.pod_max_items = 4
    job = service.create_job(_params(quantity=10), store=store, settings=settings)
    assert job.total == 4


def test_cancel_job(store, settings):
    job = service.create_job(_params(), store=store, settings=settings)
    cancelled = service.cancel_job(job.id, store=store)
    assert cancelled.status is JobStatus.CANCELLED


def test_cancel_finished_job_is_a_noop(store, make_job):
    job = make_job(total=1)
    store.update_job(job.id, status=JobStatus.COMPLETED, completed=1, next_index=1)
    assert service.cancel_job(job.id, store=store).status is JobStatus.COMPLETED


def test_cancel_unknown_job(store):
    with pytest.raises(JobNotFoundError):
        service.cancel_job("job_nope", store=store)


def test_ensure_resumable(store, make_job):
    job = make_job(total=1)
    assert service.ensure_resumable(job.id, store=store).id == job.id
    store.update_job(job.id, status=JobStatus.FAILED)
    with pytest.raises(JobValidationError, match="already failed"):
        service.ensure_resumable(job.id, store=store)


def test_list_jobs_by_shop(store, settings):
    service.create_job(_params(), shop_id="a", store=store, settings=settings)
    service.create_job(_params(), shop_id="b", store=store, settings=settings)
    assert [j.owner_ref for j in service.list_jobs("a", store=store)] == ["a"]


# ---------------------------------------------------------------------------
# run_job
# ---------------------------------------------------------------------------

def test_run_job_builds_clients_for_the_job_shop(store, settings, caps_factory):
    settings.pod_content_retry_delay = 0.0
    seen = []

    def factory(shop_id, _settings):
        seen.append(shop_id)
        return caps_factory(shop_id)

    job = service.create_job(_params(quantity=2), shop_id="shop-7", store=store, settings=settings)
    final = service.run_job(job.id, store=store, settings=settings, capabilities_factory=factory)

    assert seen == ["shop-7"]
    assert final.status is JobStatus.COMPLETED
    assert final.completed == 2


def test_run_job_with_missing_configuration_fails_job(store, settings):
    def factory(shop_id, _settings):
        raise ValueError("PRINTIFY_API_KEY is not configured.")

    job = service.create_job(_params(), store=store, settings=settings)
    final = service.run_job(job.id, store=store, settings=settings, capabilities_factory=factory)

    assert final.status is JobStatus.FAILED
    assert final.results == []


def test_run_job_on_terminal_job_does_nothing(store, settings, make_job):
    job = make_job(total=1)
    store.update_job(job.id, status=JobStatus.CANCELLED)

    def factory(shop_id, _settings):
        raise AssertionError("clients must not be built for a finished job")

    final = service.run_job(job.id, store=store, settings=settings, capabilities_factory=factory)
    assert final.status is JobStatus.CANCELLED


def test_run_job_tick(store, settings, caps_factory):
    job = service.create_job(_params(quantity=3), store=store, settings=settings)
    tick = service.run_job(
        job.id, max_items=2, store=store, settings=settings, capabilities_factory=caps_factory
    )
    assert tick.next_index == 2
    assert tick.status is JobStatus.IN_PROGRESS


class Closable:
    def __init__(self, log, name, error=None):
        self.log = log
        self.name = name
        self.error = error

    def close(self):
        self.log.append(self.name)
        if self.error:
            raise self.error


def test_capabilities_close_each_client_once(caps):
    closed = []
    shared = Closable(closed, "printify")
    caps.catalog = caps.uploader = caps.products = caps.publisher = shared
    caps.images = Closable(closed, "fal", error=RuntimeError("already closed"))

    caps.close()

    assert sorted(closed) == ["fal", "printify"]


def test_run_job_closes_clients(store, settings, caps):
    closed = []
    caps.images.close = lambda: closed.append("images")
    job = service.create_job(_params(quantity=1), store=store, settings=settings)

    service.run_job(job.id, store=store, settings=settings, capabilities_factory=lambda _shop, _settings: caps)

    assert closed == ["images"]


def test_run_job_closes_clients_when_the_run_raises(store, settings, caps, monkeypatch):
    closed = []
    caps.images.close = lambda: closed.append("images")
    job = service.create_job(_params(quantity=1), store=store, settings=settings)

    def lost_connection(self, job_id, max_items=None):
        raise RuntimeError("database connection lost")

    monkeypatch.setattr(service.JobOrchestrator, "run", lost_connection)
    with pytest.raises(RuntimeError):
        service.run_job(job.id, store=store, settings=settings, capabilities_factory=lambda _shop, _settings: caps)
    assert closed == ["images"]
