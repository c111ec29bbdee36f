from datetime import datetime
import importlib.util
import sys
from pathlib import Path

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from src.cms_images.db.db_models import Base
from src.cms_images.generation.generation_errors import TransportError
from src.cms_images.generation.generation_models import DeleteOutcome
from src.cms_images.repositories.job_handle_repository import JobHandleRepository


PROJECT_ROOT = Path(__file__).resolve().parents[3]
MODULE_PATH = PROJECT_ROOT / "scripts" / "cleanup_orphaned_jobs.py"
SPEC = importlib.util.spec_from_file_location("cleanup_orphaned_jobs_module", MODULE_PATH)
cleanup_jobs = importlib.util.module_from_spec(SPEC)
assert SPEC and SPEC.loader
sys.modules["cleanup_orphaned_jobs_module"] = cleanup_jobs
SPEC.loader.exec_module(cleanup_jobs)


class DummyClient:
    def __init__(self, outcomes):
        self.outcomes = dict(outcomes)
        self.deleted = []

    async def delete(self, handle):
        self.deleted.append(handle.value)
        outcome = self.outcomes[handle.value]
        if isinstance(outcome, Exception):
            raise outcome
        return outcome


@pytest.fixture
def repo():
    engine = create_engine("sqlite:///:memory:", future=True)
    Base.metadata.create_all(engine)
    repo = JobHandleRepository(sessionmaker(bind=engine, expire_on_commit=False))
    for handle in ("conv-ok", "conv-gone", "conv-busy", "conv-down"):
        repo.record(handle=handle, request_key="blog/post/hero/0", target_ref="/images/uploads/post/a.png")
    return repo


@pytest.mark.asyncio
async def test_cleanup_handles_dry_run_only_counts(repo):
    client = DummyClient({})

    summary = await cleanup_jobs.cleanup_handles(repo, client, older_than=datetime.utcnow(), dry_run=True)

    assert summary.dry_run is True
    assert summary.outstanding == 4
    assert client.deleted == []


@pytest.mark.asyncio
async def test_cleanup_handles_closes_deleted_and_missing_jobs(repo, capsys):
    client = DummyClient(
        {
            "conv-ok": DeleteOutcome(deleted=True, status_code=200),
            "conv-gone": DeleteOutcome(deleted=False, status_code=404),
            "conv-busy": DeleteOutcome(deleted=False, status_code=503),
            "conv-down": TransportError("connection refused"),
        }
    )

    summary = await cleanup_jobs.cleanup_handles(repo, client, older_than=datetime.utcnow(), dry_run=False)

    assert summary.deleted == 2
    assert summary.failed == 2
    assert sorted(client.deleted) == ["conv-busy", "conv-down", "conv-gone", "conv-ok"]
    assert sorted(item.handle for item in repo.list_outstanding()) == ["conv-busy", "conv-down"]
    captured = capsys.readouterr()
    assert "connection refused" in captured.err


def test_main_reports_summary(monkeypatch, capsys):
    summary = cleanup_jobs.CleanupSummary(outstanding=3, deleted=3, failed=0, dry_run=False)
    received = {}

    def fake_perform_cleanup(**kwargs):
        received.update(kwargs)
        return summary

    monkeypatch.setattr(cleanup_jobs, "perform_cleanup", fake_perform_cleanup)

    exit_code = cleanup_jobs.main(["--min-age-minutes", "5"])

    assert exit_code == 0
    assert received == {"dry_run": False, "min_age_minutes": 5}
    assert "deleted=3" in capsys.readouterr().out


def test_main_returns_one_when_deletes_fail(monkeypatch):
    summary = cleanup_jobs.CleanupSummary(outstanding=2, deleted=1, failed=1, dry_run=False)
    monkeypatch.setattr(cleanup_jobs, "perform_cleanup", lambda **kwargs: summary)

    assert cleanup_jobs.main([]) == 1


def test_main_handles_errors(monkeypatch, capsys):
    monkeypatch.setattr(cleanup_jobs, "perform_cleanup", lambda **kwargs: (_ for _ in ()).throw(RuntimeError("boom")))

    exit_code = cleanup_jobs.main(["--dry-run"])

    captured = capsys.readouterr()
    assert exit_code == 2
    assert "cleanup failed" in captured.err
    assert "boom" in captured.err
