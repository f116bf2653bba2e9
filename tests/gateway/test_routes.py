"""Gateway route tests

Covers:
1. /health and /ready
2. envelope hand-off: 202, idempotent resubmission, 422 with field errors
3. journal, area, rollup, commitment, finance and plan routes through the
   orchestrator (run_until_idle stands in for the background loop)
4. job detail, cancel, human completion and error codes
"""

from httpx import AsyncClient
from wisdomos.core.models import AgentType, new_envelope


async def _drain(system) -> None:
    summary = await system.orchestrator.run_until_idle()
    assert summary.failed == 0, summary.terminal_errors


class TestHealth:
    async def test_health(self, client: AsyncClient):
        resp = await client.get("/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
        assert "X-Request-ID" in resp.headers

    async def test_request_id_echoed(self, client: AsyncClient):
        resp = await client.get("/health", headers={"X-Request-ID": "req-42"})
        assert resp.headers["X-Request-ID"] == "req-42"

    async def test_not_ready_without_loop(self, client: AsyncClient):
        resp = await client.get("/ready")
        assert resp.status_code == 503
        data = resp.json()
        assert data["status"] == "not_ready"
        assert data["checks"]["sqlite"] == "ok"
        assert data["checks"]["orchestrator"] == "stopped"

    async def test_ready_with_loop(self, client: AsyncClient, system):
        await system.orchestrator.start()
        try:
            resp = await client.get("/ready")
        finally:
            await system.orchestrator.stop()
        assert resp.status_code == 200
        assert resp.json()["checks"]["orchestrator"] == "ok"


class TestEnvelopes:
    async def test_submit_and_resubmit(self, client: AsyncClient, clock):
        envelope = new_envelope(
            AgentType.JOURNAL,
            "journal.ingest",
            {"user_id": "u1", "content": "Quiet evening."},
            created_at=clock.now(),
        ).model_dump(mode="json")

        first = await client.post("/api/envelopes", json=envelope)
        again = await client.post("/api/envelopes", json=envelope)

        assert first.status_code == 202
        assert first.json() == {
            "job_id": envelope["message_id"],
            "agent": "JournalAgent",
            "task": "journal.ingest",
            "status": "ready",
        }
        assert again.json()["job_id"] == envelope["message_id"]

    async def test_invalid_envelope(self, client: AsyncClient):
        resp = await client.post(
            "/api/envelopes",
            json={
                "message_id": "nope",
                "created_at": "2025-03-10T12:00:00",
                "actor": "Nobody",
                "intent": "execute",
                "task": "journal.ingest",
            },
        )
        assert resp.status_code == 422
        error = resp.json()["error"]
        assert error["code"] == "VALIDATION_ERROR"
        assert {f["field"] for f in error["fields"]} == {"message_id", "created_at", "actor"}


class TestJournal:
    async def test_ingest_and_list(self, client: AsyncClient, system):
        resp = await client.post(
            "/api/users/u1/journal", json={"content": "Great progress on the project."}
        )
        assert resp.status_code == 202
        job_id = resp.json()["job_id"]
        await _drain(system)

        job = await client.get(f"/api/jobs/{job_id}")
        assert job.json()["status"] == "completed"

        entries = (await client.get("/api/users/u1/journal")).json()["entries"]
        assert [e["content"] for e in entries] == ["Great progress on the project."]

        resp = await client.patch(
            f"/api/users/u1/journal/{entries[0]['entry_id']}", json={"content": "Edited."}
        )
        assert resp.status_code == 202
        assert resp.json()["task"] == "journal.update"
        await _drain(system)
        entries = (await client.get("/api/users/u1/journal")).json()["entries"]
        assert entries[0]["content"] == "Edited."

    async def test_empty_content_rejected(self, client: AsyncClient):
        resp = await client.post("/api/users/u1/journal", json={"content": ""})
        assert resp.status_code == 422


class TestAreasAndRollups:
    async def test_area_then_rollup(self, client: AsyncClient, system):
        resp = await client.post("/api/users/u1/areas", json={"code": "WRK", "name": "Work"})
        assert resp.status_code == 202
        await _drain(system)
        areas = (await client.get("/api/users/u1/areas")).json()["areas"]
        assert [a["code"] for a in areas] == ["WRK"]

        await client.post(
            "/api/users/u1/journal",
            json={"content": "Great progress on the client project today."},
        )
        resp = await client.post("/api/users/u1/rollups")
        assert resp.status_code == 202
        assert resp.json()["task"] == "fulfilment.rollup"
        await _drain(system)

        rollups = (
            await client.get("/api/users/u1/rollups", params={"period_type": "month"})
        ).json()["rollups"]
        assert sorted(r["dimension"] for r in rollups) == ["FOR", "INT"]


class TestCommitments:
    async def test_confirm_flow(self, client: AsyncClient, system):
        await system.agents[AgentType.JOURNAL].ingest("u1", "I plan to read more.")
        await _drain(system)

        detected = (
            await client.get("/api/users/u1/commitments", params={"status": "detected"})
        ).json()["commitments"]
        assert len(detected) == 1
        commitment_id = detected[0]["commitment_id"]

        resp = await client.post(f"/api/users/u1/commitments/{commitment_id}/confirm")
        assert resp.status_code == 202
        await _drain(system)

        [active] = (await client.get("/api/users/u1/commitments")).json()["commitments"]
        assert active["status"] == "active"
        assert active["area_id"] is not None

    async def test_sweep_and_issues(self, client: AsyncClient, system):
        resp = await client.post("/api/users/u1/integrity/sweep")
        assert resp.status_code == 202
        assert resp.json()["task"] == "integrity.sweep"
        await _drain(system)
        assert (await client.get("/api/users/u1/integrity/issues")).json() == {"issues": []}


class TestFinance:
    async def test_ledger_and_cashflow(self, client: AsyncClient, system):
        resp = await client.post(
            "/api/users/u1/finance/ledger",
            json={
                "source": "bank-csv",
                "rows": [
                    {"id": "a", "date": "2025-03-01", "amount": 300},
                    {"id": "b", "date": "2025-03-05", "amount": -200},
                ],
            },
        )
        assert resp.status_code == 202
        await _drain(system)

        cashflow = (await client.get("/api/users/u1/finance/cashflow")).json()
        assert cashflow["balance"] == 100.0
        assert cashflow["runway_days"] == 15.0
        assert cashflow["status"] == "tight"

        profit = (await client.get("/api/users/u1/finance/profitability")).json()
        assert profit["net"] == 100.0

    async def test_inverted_window(self, client: AsyncClient):
        resp = await client.get(
            "/api/users/u1/finance/profitability",
            params={"start": "2025-03-02T00:00:00Z", "end": "2025-03-01T00:00:00Z"},
        )
        assert resp.status_code == 422
        assert resp.json()["error"]["fields"][0]["field"] == "start"


class TestPlansAndJobs:
    async def test_plan_lifecycle(self, client: AsyncClient, system):
        resp = await client.post(
            "/api/users/u1/plans", json={"objective": "Implement weekly review"}
        )
        assert resp.status_code == 202
        await _drain(system)

        [plan] = (await client.get("/api/users/u1/plans")).json()["plans"]
        detail = (await client.get(f"/api/plans/{plan['plan_id']}")).json()
        assert len(detail["jobs"]) == 4
        assert {j["agent"] for j in detail["jobs"]} == {"human"}

        first = plan["tasks"][0]["task_id"]
        resp = await client.post(f"/api/jobs/{first}/complete", params={"user_id": "u1"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"

        # completing it twice is a conflict
        resp = await client.post(f"/api/jobs/{first}/complete")
        assert resp.status_code == 409
        assert resp.json()["error"]["code"] == "CONFLICT"

    async def test_unknown_plan(self, client: AsyncClient):
        resp = await client.get("/api/plans/01JNONEXISTENT0000000000000")
        assert resp.status_code == 404
        assert resp.json()["error"]["code"] == "NOT_FOUND"

    async def test_cancel(self, client: AsyncClient):
        resp = await client.post(
            "/api/users/u1/journal", json={"content": "To be cancelled."}
        )
        job_id = resp.json()["job_id"]

        denied = await client.post(f"/api/jobs/{job_id}/cancel", params={"user_id": "u2"})
        assert denied.status_code == 403
        assert denied.json()["error"]["code"] == "UNAUTHORIZED"

        resp = await client.post(f"/api/jobs/{job_id}/cancel", params={"user_id": "u1"})
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"

        listed = (
            await client.get("/api/users/u1/jobs", params={"status": "cancelled"})
        ).json()["jobs"]
        assert [j["job_id"] for j in listed] == [job_id]

    async def test_unknown_job(self, client: AsyncClient):
        resp = await client.get("/api/jobs/01JNONEXISTENT0000000000000")
        assert resp.status_code == 404
