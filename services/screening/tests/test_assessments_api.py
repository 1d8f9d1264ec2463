import pytest
import httpx
from httpx import ASGITransport

from services.screening.app import app

pytestmark = pytest.mark.usefixtures("screening_db")


async def _register(client: httpx.AsyncClient, username: str, password: str = "password123") -> str:
    r = await client.post("/auth/register", json={"username": username, "password": password})
    assert r.status_code == 200, r.text
    return r.json()["access_token"]


def _answers(prefix: str, count: int, value: str) -> dict:
    return {f"{prefix}_{i}": value for i in range(1, count + 1)}


def _auth(token: str) -> dict:
    return {"Authorization": f"Bearer {token}"}


@pytest.mark.anyio
async def test_submit_requires_auth():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        r = await client.post("/assessments", json={"role": "parent", "answers": _answers("par", 20, "never")})
    assert r.status_code == 401


@pytest.mark.anyio
async def test_submit_and_read_back_assessment():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await _register(client, "parent1")
        r = await client.post(
            "/assessments",
            json={
                "role": "parent",
                "answers": _answers("par", 20, "always"),
                "has_family_history": False,
                "child_data": {"childName": "Sam", "childAge": "6"},
            },
            headers=_auth(token),
        )
        assert r.status_code == 200, r.text
        saved = r.json()
        assert saved["role"] == "parent"
        assert saved["patient_id"].startswith("CHILD-")
        assert saved["questionnaire_score"] == 100
        assert saved["fused_score"] == 100
        assert saved["model_score"] is None
        assert saved["severity"] == "very-high"
        assert saved["assessment_complete"] is True
        assert saved["result"]["top_contributors"][0]["question"] == "par_20"

        r = await client.get("/assessments/me", headers=_auth(token))
    assert r.status_code == 200
    body = r.json()
    assert body["patient_id"] == saved["patient_id"]
    assert body["child_data"] == {"childName": "Sam", "childAge": "6"}
    assert body["answers"]["par_1"] == "always"
    assert body["result"]["normalized_score"] == 100
    assert body["result"]["severity"]["label"] == "Very High - Regular Checkup Needed"


@pytest.mark.anyio
async def test_stored_fused_score_matches_recomputed_result():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await _register(client, "clinician1")
        r = await client.post(
            "/assessments",
            json={
                "role": "clinician",
                "answers": _answers("par", 20, "sometimes"),
                "video_prediction": {"prediction_score": 10, "confidence": 0.9},
            },
            headers=_auth(token),
        )
        assert r.status_code == 200, r.text
        saved = r.json()
        assert saved["patient_id"].startswith("PAT-")

        r = await client.get("/assessments/me", headers=_auth(token))
    body = r.json()
    assert body["fused_score"] == saved["fused_score"] == body["result"]["fused_score"]
    assert body["severity"] == body["result"]["severity"]["level"]


@pytest.mark.anyio
async def test_role_is_locked_after_first_assessment():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await _register(client, "locked")
        r = await client.post(
            "/assessments",
            json={"role": "individual", "answers": _answers("ind", 15, "rarely")},
            headers=_auth(token),
        )
        assert r.status_code == 200

        r = await client.post(
            "/assessments",
            json={"role": "parent", "answers": _answers("par", 20, "rarely")},
            headers=_auth(token),
        )
    assert r.status_code == 409


@pytest.mark.anyio
async def test_patient_id_cannot_be_reused_by_another_user():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        t1 = await _register(client, "first")
        t2 = await _register(client, "second")
        payload = {"role": "parent", "patient_id": "CHILD-SHARED-0001", "answers": _answers("par", 20, "often")}

        r = await client.post("/assessments", json=payload, headers=_auth(t1))
        assert r.status_code == 200

        r = await client.post("/assessments", json=payload, headers=_auth(t2))
    assert r.status_code == 409


@pytest.mark.anyio
async def test_resubmission_keeps_patient_id():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await _register(client, "repeat")
        r1 = await client.post(
            "/assessments",
            json={"role": "individual", "patient_id": "SELF-ME-0001", "answers": _answers("ind", 15, "never")},
            headers=_auth(token),
        )
        r2 = await client.post(
            "/assessments",
            json={"role": "individual", "patient_id": "SELF-OTHER-0002", "answers": _answers("ind", 15, "often")},
            headers=_auth(token),
        )
    assert r1.status_code == r2.status_code == 200
    assert r2.json()["patient_id"] == "SELF-ME-0001"
    assert r2.json()["id"] == r1.json()["id"]
    assert r2.json()["questionnaire_score"] == 75


@pytest.mark.anyio
async def test_empty_submission_is_rejected_without_saving():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await _register(client, "empty")
        r = await client.post("/assessments", json={"role": "parent", "answers": {}}, headers=_auth(token))
        assert r.status_code == 400

        r = await client.get("/assessments/me", headers=_auth(token))
    assert r.status_code == 404


@pytest.mark.anyio
async def test_history_trend_and_limit():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await _register(client, "history")
        for value in ["never", "never", "always"]:
            r = await client.post(
                "/assessments",
                json={"role": "individual", "answers": _answers("ind", 15, value)},
                headers=_auth(token),
            )
            assert r.status_code == 200

        r = await client.get("/assessments/me/history", headers=_auth(token))
        assert r.status_code == 200
        body = r.json()
        assert body["total"] == 3
        assert body["trend"] == "improving"
        assert [e["questionnaire_score"] for e in body["recent"]] == [100, 0, 0]

        for _ in range(20):
            await client.post(
                "/assessments",
                json={"role": "individual", "answers": _answers("ind", 15, "sometimes")},
                headers=_auth(token),
            )

        r = await client.get("/assessments/me/history", params={"limit": 20}, headers=_auth(token))
    body = r.json()
    assert body["total"] == 20
    assert len(body["recent"]) == 20
    assert body["trend"] == "stable"


@pytest.mark.anyio
async def test_clear_assessment():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await _register(client, "clearme")
        r = await client.post(
            "/assessments",
            json={"role": "parent", "patient_id": "CHILD-CLEAR-0001", "answers": _answers("par", 20, "often")},
            headers=_auth(token),
        )
        assert r.status_code == 200

        r = await client.delete("/assessments/me", headers=_auth(token))
        assert r.status_code == 200
        assert r.json() == {"status": "cleared", "history_removed": 1}

        r = await client.get("/assessments/me", headers=_auth(token))
        assert r.status_code == 404

        r = await client.get("/fused-score", params={"patientId": "CHILD-CLEAR-0001"})
        assert r.status_code == 404

        # A cleared account may pick a different role.
        r = await client.post(
            "/assessments",
            json={"role": "individual", "answers": _answers("ind", 15, "often")},
            headers=_auth(token),
        )
    assert r.status_code == 200


@pytest.mark.anyio
async def test_assessment_writes_are_audited():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        token = await _register(client, "audited")
        await client.post(
            "/assessments",
            json={"role": "parent", "answers": _answers("par", 20, "rarely")},
            headers={**_auth(token), "X-Device-Id": "tablet-1"},
        )
        await client.delete("/assessments/me", headers=_auth(token))

        r = await client.get("/audit/logs", headers=_auth(token))
        assert r.status_code == 200
        logs = r.json()
        assert [log["action"] for log in logs] == ["auth.register", "assessment.save", "assessment.clear"]
        assert logs[1]["device_id"] == "tablet-1"
        assert logs[1]["prev_hash"] == logs[0]["entry_hash"]

        r = await client.get("/audit/verify", headers=_auth(token))
    assert r.json() == {"ok": True}


@pytest.mark.anyio
async def test_logout_revokes_only_the_current_session():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await _register(client, "two_devices")
        r = await client.post("/auth/login", json={"username": "two_devices", "password": "password123"})
        second = r.json()["access_token"]

        r = await client.post("/auth/logout", headers=_auth(first))
        assert r.status_code == 200
        assert r.json() == {"status": "signed_out", "revoked": 1}

        gone = await client.get("/assessments/me", headers=_auth(first))
        still = await client.get("/assessments/me/history", headers=_auth(second))
    assert gone.status_code == 401
    assert still.status_code == 200


@pytest.mark.anyio
async def test_logout_all_sessions():
    async with httpx.AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        first = await _register(client, "everywhere")
        r = await client.post("/auth/login", json={"username": "everywhere", "password": "password123"})
        second = r.json()["access_token"]

        r = await client.post("/auth/logout", params={"all_sessions": "true"}, headers=_auth(second))
        assert r.json()["revoked"] == 2

        r1 = await client.get("/assessments/me/history", headers=_auth(first))
        r2 = await client.get("/assessments/me/history", headers=_auth(second))
        logs = await client.post("/auth/logout", headers=_auth(second))
    assert r1.status_code == r2.status_code == logs.status_code == 401
