# File: tests/test_api.py
"""
Test the REST layer (api/main.py) and the job manager behind it.

The endpoint tests use FastAPI's TestClient against the module-level
JobManager; the JobManager tests inject fake runners so that
cancellation and failure paths run without a real analysis.
"""

import threading

import pytest
from fastapi.testclient import TestClient

import api.main as main
from api.config import ApiConfig
from api.jobs import JobManager, JobStatus
from mini_bridge.analysis import AnalysisRequest, AnalysisResult
from mini_bridge.errors import InvalidGeometryError


client = TestClient(main.app)

INFLUENCE_JOB = {
    'spans': [960.0],
    'analysis_type': 'influence_lines',
    'elements_per_span': 10,
    'sections': [480.0],
    'quantities': ['moment'],
}


def test_health_check():
    response = client.get("/")
    assert response.status_code == 200
    assert response.json()['status'] == 'ok'


def test_catalog_endpoints():
    vehicles = client.get("/api/catalog/vehicles").json()
    truck = next(v for v in vehicles if v['name'] == 'HL93-truck')
    assert truck['gross_weight'] == 72.0
    assert truck['variable_spacing']['index'] == 1

    girders = client.get("/api/catalog/girders").json()
    assert 'AASHTO-IV' in {g['name'] for g in girders}

    materials = client.get("/api/catalog/materials").json()
    assert {m['kind'] for m in materials} == {'concrete', 'strand', 'steel'}


def test_submit_and_poll_influence_job():
    response = client.post("/api/analyses", json=INFLUENCE_JOB)
    assert response.status_code == 202
    handle = response.json()
    assert handle['tier'] == 'bounded'
    job_id = handle['job_id']

    main.jobs.wait(job_id, timeout=60)

    job = client.get(f"/api/jobs/{job_id}").json()
    assert job['status'] == 'completed'
    assert job['summary']['max_ordinates']['moment@480'] == pytest.approx(240.0, rel=1e-6)

    detail = client.get(f"/api/jobs/{job_id}/detail").json()
    assert len(detail['influence_lines']) > 100

    events = client.get(f"/api/jobs/{job_id}/events").json()
    assert events[0]['phase'] == 'queued'
    assert [e['terminal'] for e in events].count(True) == 1
    assert events[-1]['terminal'] and events[-1]['phase'] == 'completed'
    seqs = [e['seq'] for e in events]
    assert seqs == sorted(seqs)

    later = client.get(f"/api/jobs/{job_id}/events", params={'after': seqs[-2]}).json()
    assert [e['seq'] for e in later] == [seqs[-1]]

    # no rating table for an influence-line job
    assert client.get(f"/api/jobs/{job_id}/export/rating.csv").status_code == 409
    print("✓ Influence-line job completed through the API")


def test_invalid_requests_are_rejected():
    assert client.post("/api/analyses", json={'spans': []}).status_code == 422
    bad_span = client.post("/api/analyses", json={'spans': [-10.0]})
    assert bad_span.status_code == 422
    assert 'positive' in bad_span.json()['detail']

    unknown = client.post("/api/analyses", json={'spans': [960.0], 'girder': 'AASHTO-XX'})
    assert unknown.status_code == 422
    assert 'AASHTO-IV' in unknown.json()['detail']


def test_plan_limit_is_forbidden(monkeypatch):
    monkeypatch.setattr(main, 'CONFIG', ApiConfig(allowed_tiers=('bounded',)))
    response = client.post("/api/analyses", json={**INFLUENCE_JOB, 'spans': [960.0] * 4})
    assert response.status_code == 403
    assert 'unbounded' in response.json()['detail']


def test_unknown_job():
    assert client.get("/api/jobs/nope").status_code == 404
    assert client.post("/api/jobs/nope/cancel").status_code == 404


def test_config_from_env():
    config = ApiConfig.from_env({'BRIDGECRAFT_ALLOWED_TIERS': 'bounded, ',
                                 'BRIDGECRAFT_MAX_WORKERS': '4'})
    assert config.allowed_tiers == ('bounded',)
    assert config.max_workers == 4
    assert ApiConfig.from_env({}).allowed_tiers == ('bounded', 'unbounded')


# =============================================================================
# JobManager with fake runners
# =============================================================================

REQUEST = AnalysisRequest(spans=(960.0,))


def blocking_runner(started):
    def run(request, cancel, progress):
        started.set()
        progress('work', 10.0, 'spinning')
        for _ in range(6000):
            cancel.check(stage='work')
            threading.Event().wait(0.01)
        raise AssertionError("runner was never cancelled")
    return run


def test_running_job_is_cancelled_cooperatively():
    started = threading.Event()
    manager = JobManager(max_workers=1, runner=blocking_runner(started))
    job = manager.submit(REQUEST)
    assert started.wait(10)

    manager.cancel(job.id)
    manager.wait(job.id, timeout=10)

    assert job.status is JobStatus.CANCELLED
    events = manager.events(job.id)
    assert [e.phase for e in events] == ['queued', 'work', 'cancelled']
    assert events[-1].terminal
    manager.shutdown()


def test_pending_job_is_cancelled_before_start():
    started = threading.Event()
    manager = JobManager(max_workers=1, runner=blocking_runner(started))
    first = manager.submit(REQUEST)
    second = manager.submit(REQUEST)
    assert started.wait(10)

    manager.cancel(second.id)
    assert second.status is JobStatus.CANCELLED
    manager.cancel(first.id)
    manager.shutdown()

    assert first.status is JobStatus.CANCELLED
    # the queued job never ran and has exactly one terminal event
    assert [e.phase for e in manager.events(second.id)] == ['queued', 'cancelled']


def test_failing_runners():
    def invalid(request, cancel, progress):
        raise InvalidGeometryError("Span lengths must be positive")

    def crash(request, cancel, progress):
        raise RuntimeError("boom")

    for runner, message in ((invalid, 'positive'), (crash, 'RuntimeError: boom')):
        manager = JobManager(max_workers=1, runner=runner)
        job = manager.wait(manager.submit(REQUEST).id, timeout=10)
        assert job.status is JobStatus.FAILED
        assert message in job.error
        assert job.summary is None
        manager.shutdown()


def test_runner_kwargs_are_forwarded():
    seen = {}

    def runner(request, cancel, progress, **kwargs):
        seen.update(kwargs)
        return AnalysisResult(status='completed', summary={'ok': True}, detail={})

    manager = JobManager(max_workers=1, runner=runner, settings='custom')
    job = manager.wait(manager.submit(REQUEST).id, timeout=10)
    assert job.status is JobStatus.COMPLETED
    assert job.summary == {'ok': True}
    assert seen == {'settings': 'custom'}
    manager.shutdown()


def test_finished_jobs_beyond_retention_are_forgotten():
    def quick(request, cancel, progress):
        return AnalysisResult(status='completed', summary={'ok': True}, detail={})

    manager = JobManager(max_workers=1, runner=quick, retain=2)
    ids = []
    for _ in range(3):
        ids.append(manager.wait(manager.submit(REQUEST).id, timeout=10).id)

    with pytest.raises(KeyError):
        manager.get(ids[0])
    assert [manager.get(i).status for i in ids[1:]] == [JobStatus.COMPLETED] * 2

    with pytest.raises(ValueError):
        JobManager(retain=0)
    manager.shutdown()


def test_job_retention_from_env():
    assert ApiConfig.from_env({'BRIDGECRAFT_JOB_RETENTION': '5'}).job_retention == 5
    assert ApiConfig.from_env({}).job_retention == 100
