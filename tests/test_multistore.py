from datetime import datetime

import pytest

from pylon.multistore import MultiStore
from pylon.store import Job, Store


def make_job(job_id, pylon_name, status):
    return Job(id=job_id, pylon_name=pylon_name, status=status, created_at=datetime.now())


@pytest.fixture
def stores(tmp_path):
    sa = Store(tmp_path / "a.db")
    sb = Store(tmp_path / "b.db")
    yield sa, sb
    sa.close()
    sb.close()


@pytest.fixture
def multi(stores):
    sa, sb = stores
    return MultiStore({"pylon-a": sa, "pylon-b": sb})


def test_put_and_get(multi):
    multi.put(make_job("job-1", "pylon-a", "pending"))
    multi.put(make_job("job-2", "pylon-b", "running"))

    got = multi.get("job-1")
    assert got is not None
    assert got.pylon_name == "pylon-a"

    got = multi.get("job-2")
    assert got is not None
    assert got.pylon_name == "pylon-b"

    assert multi.get("nonexistent") is None


def test_put_routes_to_pylon_store(multi, stores):
    sa, sb = stores
    multi.put(make_job("job-1", "pylon-a", "pending"))
    assert sa.get("job-1") is not None
    assert sb.get("job-1") is None


def test_get_by_topic(multi):
    job = make_job("job-1", "pylon-a", "running")
    job.topic_id = "topic-42"
    multi.put(job)

    got = multi.get_by_topic("topic-42")
    assert got is not None
    assert got.id == "job-1"
    assert multi.get_by_topic("unknown") is None


def test_list(multi):
    multi.put(make_job("job-1", "pylon-a", "pending"))
    multi.put(make_job("job-2", "pylon-b", "running"))
    multi.put(make_job("job-3", "pylon-a", "completed"))

    all_jobs = multi.list()
    assert len(all_jobs) == 3
    assert {j.id for j in all_jobs} == {"job-1", "job-2", "job-3"}


def test_update_status(multi):
    multi.put(make_job("job-1", "pylon-a", "pending"))
    multi.update_status("job-1", "running")
    assert multi.get("job-1").status == "running"


def test_update_session_id(multi):
    multi.put(make_job("job-1", "pylon-b", "running"))
    multi.update_session_id("job-1", "sess-xyz")
    assert multi.get("job-1").session_id == "sess-xyz"


def test_set_completed(multi):
    multi.put(make_job("job-1", "pylon-a", "running"))
    multi.set_completed("job-1", b'{"result":"ok"}')

    got = multi.get("job-1")
    assert got.status == "completed"
    assert got.completed_at is not None


def test_set_failed(multi):
    multi.put(make_job("job-1", "pylon-a", "running"))
    multi.set_failed("job-1", "container crashed")

    got = multi.get("job-1")
    assert got.status == "failed"
    assert got.error == "container crashed"
    assert got.completed_at is not None


def test_delete(multi):
    multi.put(make_job("job-1", "pylon-a", "pending"))
    multi.delete("job-1")
    assert multi.get("job-1") is None
    assert multi.list() == []


def test_get_fallback(multi, stores):
    sa, _ = stores
    sa.put(make_job("job-direct", "pylon-a", "pending"))

    got = multi.get("job-direct")
    assert got is not None
    assert got.id == "job-direct"


def test_recover_from_db(tmp_path):
    path_a = tmp_path / "a.db"
    path_b = tmp_path / "b.db"
    with Store(path_a) as sa:
        sa.put(make_job("job-1", "pylon-a", "pending"))
        sa.put(make_job("job-2", "pylon-a", "completed"))
    with Store(path_b) as sb:
        sb.put(make_job("job-3", "pylon-b", "running"))

    with Store(path_a) as sa2, Store(path_b) as sb2:
        multi = MultiStore({"pylon-a": sa2, "pylon-b": sb2})
        assert multi.recover_from_db() == 2

        got = multi.get("job-1")
        assert got is not None
        assert got.status == "pending"

        got = multi.get("job-3")
        assert got is not None
        assert got.status == "active"

        assert multi.get("job-2") is None

        multi.update_status("job-3", "running")
        assert sb2.get("job-3").status == "running"


def test_save_payload_sample(multi, stores):
    sa, _ = stores
    body = {"event": "error", "data": {"title": "NPE"}}
    multi.save_payload_sample("pylon-a", body)

    sample = sa.load_payload_sample("pylon-a")
    assert '"event"' in sample
    assert '"error"' in sample


def test_save_payload_sample_unknown_pylon_is_ignored(multi, stores):
    sa, sb = stores
    multi.save_payload_sample("pylon-z", {"event": "error"})
    assert sa.load_payload_sample("pylon-z") == ""
    assert sb.load_payload_sample("pylon-z") == ""