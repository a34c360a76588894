"""Tests for the scheduled sweep script and health endpoint."""

import asyncio

from sqlalchemy.exc import OperationalError, ProgrammingError

from src.database import crud
from src.services.errors import StoreUnavailable
from src.tasks import sweep_codes


def test_health_check(client):
    response = client.get("/health")

    assert response.status_code == 200
    assert response.json()["status"] == "healthy"


def test_sweep_script(test_db, expired_code, monkeypatch, capsys):
    code_id = expired_code.id
    monkeypatch.setattr(sweep_codes, "SessionLocal", lambda: test_db)

    assert sweep_codes.main() == 0
    assert "1 code(s) retired" in capsys.readouterr().out
    assert crud.get_access_code_by_id(test_db, code_id).is_retired is True


def test_sweep_script_reports_failure(test_db, monkeypatch, capsys):
    def unreachable(*args, **kwargs):
        raise OperationalError("UPDATE access_codes", {}, Exception("connection refused"))

    monkeypatch.setattr(sweep_codes, "SessionLocal", lambda: test_db)
    monkeypatch.setattr(crud, "retire_spent_access_codes", unreachable)

    assert sweep_codes.main() == 1
    assert "Sweep failed" in capsys.readouterr().err


def test_periodic_sweep_survives_failed_pass(monkeypatch):
    """A failing sweep pass is logged and the next pass still runs."""
    import main

    calls = []

    def flaky_sweep():
        calls.append(1)
        if len(calls) == 1:
            raise ProgrammingError("UPDATE access_codes", {}, Exception("no such column"))
        if len(calls) == 2:
            raise StoreUnavailable("sweep: access code store unavailable")
        return 0

    monkeypatch.setattr(main, "_sweep_once", flaky_sweep)

    async def run():
        task = asyncio.create_task(main._periodic_sweep(0))
        for _ in range(500):
            if len(calls) >= 3 or task.done():
                break
            await asyncio.sleep(0.01)
        alive = not task.done()
        task.cancel()
        try:
            await task
        except asyncio.CancelledError:
            pass
        return alive

    assert asyncio.run(run()) is True
    assert len(calls) >= 3
