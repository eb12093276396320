"""
Tests for the health and scheduler status endpoints.
"""

from datetime import timedelta

import httpx
import pytest
import pytest_asyncio

from cycle_engine.database import get_db
from cycle_engine.main import app
from cycle_engine.models import JobExecution, SyncIssue
from cycle_engine.timeutil import utcnow


@pytest_asyncio.fixture
async def client(session_maker):
    """Client bound to the in-memory database; overrides cleared afterwards."""
    async def override_db():
        async with session_maker() as session:
            yield session

    app.dependency_overrides[get_db] = override_db
    transport = httpx.ASGITransport(app=app)
    async with httpx.AsyncClient(transport=transport, base_url="http://test") as client:
        yield client
    app.dependency_overrides.clear()


class TestHealth:
    @pytest.mark.asyncio
    async def test_empty_database_is_healthy(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        body = response.json()
        assert body["status"] == "healthy"
        assert body["checks"]["database"] == "ok"
        assert body["checks"]["latest_cycle"] is None

    @pytest.mark.asyncio
    async def test_sync_issue_degrades(self, client, session_maker):
        async with session_maker() as session:
            async with session.begin():
                session.add(SyncIssue(kind="db_behind_chain", chain_cycle_id=43, db_cycle_id=42, details={}))

        body = (await client.get("/health")).json()
        assert body["status"] == "degraded"
        assert body["checks"]["sync_issues"] == 1

    @pytest.mark.asyncio
    async def test_ready(self, client):
        assert (await client.get("/ready")).json() == {"status": "ready"}


class TestSchedulerStatus:
    @pytest.mark.asyncio
    async def test_overdue_job_degrades(self, client, session_maker):
        now = utcnow()
        async with session_maker() as session:
            async with session.begin():
                session.add(JobExecution(
                    job_name="index-events", execution_id="a", status="completed", started_at=now,
                ))
                session.add(JobExecution(
                    job_name="fetch-results", execution_id="b", status="completed",
                    started_at=now - timedelta(hours=1),
                ))

        body = (await client.get("/scheduler")).json()
        assert body["status"] == "degraded"
        assert body["overdue"] == ["fetch-results"]
        assert body["tasks"]["index-events"]["status"] == "healthy"
        assert body["tasks"]["open-cycle"] == {"last_run": None, "status": "no_data"}
