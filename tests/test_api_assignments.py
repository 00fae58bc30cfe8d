"""End-to-end through the HTTP surface: groups, batches, completion, review, credits."""

import pytest

pytestmark = pytest.mark.asyncio

COACH = {"X-Test-User": "coach"}
A1 = {"X-Test-User": "a1"}
A2 = {"X-Test-User": "a2"}
STRANGER = {"X-Test-User": "stranger"}


async def _group(client, *athletes):
    r = await client.post("/v1/groups", json={"name": "Barbell Club"}, headers=COACH)
    assert r.status_code == 201
    gid = r.json()["id"]
    for a in athletes:
        r = await client.post(f"/v1/groups/{gid}/members", json={"user_id": a}, headers=COACH)
        assert r.status_code == 200
    return gid


def _squat(weight):
    return [{"name": "Back Squat", "type": "weight", "sets": [{"prescribed_weight": weight, "prescribed_reps": 5}]}]


async def _batch(client, gid):
    r = await client.post(
        f"/v1/groups/{gid}/batches",
        json={"name": "Lower A", "scheduled_date": "2026-03-02", "prescriptions": {"a1": _squat(130), "a2": _squat(150)}},
        headers=COACH,
    )
    assert r.status_code == 201, r.text
    return r.json()


async def test_signup_bonus_and_pricing(client):
    r = await client.get("/v1/credits/balance", headers=A1)
    assert r.json() == {"balance": 50, "exempt": False}
    r = await client.get("/v1/credits/pricing")
    assert r.json()["pricing"]["group_workout_per_athlete"] == 5
    r = await client.get("/v1/credits/ledger", headers=A1)
    assert [e["reason"] for e in r.json()["entries"]] == ["signup_bonus"]


async def test_onboarding_claim_once(client):
    r = await client.post("/v1/onboarding/tasks/goal/claim", headers=A1)
    assert r.json()["balance"] == 150
    r = await client.post("/v1/onboarding/tasks/goal/claim", headers=A1)
    assert r.json()["balance"] == 150
    r = await client.post("/v1/onboarding/tasks/nope/claim", headers=A1)
    assert r.status_code == 404


async def test_onboarding_workout_reward_needs_completed_workout(client):
    gid = await _group(client, "a1", "a2")
    aid = next(a["id"] for a in (await _batch(client, gid))["assignments"] if a["assigned_to"] == "a1")
    r = await client.post("/v1/onboarding/tasks/workout/claim", headers=A1)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "TASK_NOT_COMPLETED"
    assert (await client.get("/v1/credits/balance", headers=A1)).json()["balance"] == 50

    r = await client.post(f"/v1/assignments/{aid}/complete", json={"version": 0, "exercises": _squat(130)}, headers=A1)
    assert r.status_code == 200, r.text
    tasks = {t["id"]: t["status"] for t in (await client.get("/v1/onboarding/tasks", headers=A1)).json()["tasks"]}
    assert tasks["workout"] == "completed"
    r = await client.post("/v1/onboarding/tasks/workout/claim", headers=A1)
    assert r.status_code == 200, r.text
    assert r.json()["balance"] == 150
    tasks = {t["id"]: t["status"] for t in (await client.get("/v1/onboarding/tasks", headers=A1)).json()["tasks"]}
    assert tasks["workout"] == "claimed"


async def test_onboarding_ai_workout_reward_needs_generation(client):
    r = await client.post("/v1/onboarding/tasks/ai_workout/claim", headers=A1)
    assert r.status_code == 409
    r = await client.post("/v1/generate/workout", json={"payload": {"goal": "strength"}}, headers=A1)
    assert r.status_code == 200, r.text
    r = await client.post("/v1/onboarding/tasks/ai_workout/claim", headers=A1)
    assert r.status_code == 200, r.text
    assert r.json()["balance"] == 95


async def test_batch_and_sibling_read(client):
    gid = await _group(client, "a1", "a2")
    body = await _batch(client, gid)
    assert body["batch_key"] == "Lower A-2026-03-02"
    weights = {a["assigned_to"]: a["exercises"][0]["sets"][0]["prescribed_weight"] for a in body["assignments"]}
    assert weights == {"a1": 130, "a2": 150}
    r = await client.get(f"/v1/groups/{gid}/batches/Lower A-2026-03-02", headers=A2)
    assert r.status_code == 200
    assert r.json()["total"] == 2
    r = await client.get("/v1/assignments", headers=A1)
    assert [a["assigned_to"] for a in r.json()["assignments"]] == ["a1"]


async def test_coach_log_then_athlete_edit_then_rollback(client):
    gid = await _group(client, "a1", "a2")
    aid = next(a["id"] for a in (await _batch(client, gid))["assignments"] if a["assigned_to"] == "a1")

    logged = _squat(130)
    logged[0]["sets"][0]["actual_weight"] = 135
    r = await client.post(f"/v1/assignments/{aid}/complete", json={"version": 0, "exercises": logged}, headers=COACH)
    assert r.status_code == 200, r.text
    a = r.json()
    assert (a["status"], a["completed_by"], a["review_status"]) == ("completed", "coach", "pending")
    assert a["needs_review"] is True

    r = await client.get("/v1/assignments/reviews/pending", headers=A1)
    assert [p["id"] for p in r.json()["assignments"]] == [aid]

    r = await client.post(f"/v1/assignments/{aid}/edit", headers=A1)
    assert r.status_code == 200
    logged[0]["sets"][0]["actual_weight"] = 140
    r = await client.post(f"/v1/assignments/{aid}/complete", json={"version": 1, "exercises": logged}, headers=A1)
    a = r.json()
    assert (a["review_status"], a["completed_by"]) == ("edited", "a1")
    assert a["reviewed_at"] is not None
    assert a["trusted"] is True

    r = await client.post(f"/v1/assignments/{aid}/incomplete", json={"version": 2}, headers=COACH)
    a = r.json()
    assert (a["status"], a["completed_at"], a["review_status"]) == ("scheduled", None, "none")

    r = await client.get(f"/v1/assignments/{aid}/history", headers=A1)
    assert {e["event_type"] for e in r.json()["events"]} == {"assignment_complete", "assignment_mark_incomplete"}


async def test_stale_version_returns_409(client):
    gid = await _group(client, "a1")
    aid = (await _batch_one(client, gid))["id"]
    r = await client.post(f"/v1/assignments/{aid}/complete", json={"version": 0}, headers=A1)
    assert r.status_code == 200
    r = await client.post(f"/v1/assignments/{aid}/incomplete", json={"version": 0}, headers=COACH)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "WRITE_CONFLICT"


async def test_approve_rules(client):
    gid = await _group(client, "a1")
    aid = (await _batch_one(client, gid))["id"]
    await client.post(f"/v1/assignments/{aid}/complete", json={"version": 0}, headers=COACH)
    r = await client.post(f"/v1/assignments/{aid}/approve", json={"version": 1}, headers=COACH)
    assert r.status_code == 403
    r = await client.post(f"/v1/assignments/{aid}/approve", json={"version": 1}, headers=A1)
    assert r.json()["review_status"] == "approved"
    r = await client.post(f"/v1/assignments/{aid}/approve", json={"version": 2}, headers=A1)
    assert r.status_code == 409
    assert r.json()["error"]["code"] == "INVALID_TRANSITION"


async def test_outsiders_are_refused(client):
    gid = await _group(client, "a1")
    aid = (await _batch_one(client, gid))["id"]
    r = await client.get(f"/v1/assignments/{aid}", headers=STRANGER)
    assert r.status_code == 403
    r = await client.post(f"/v1/assignments/{aid}/complete", json={"version": 0}, headers=STRANGER)
    assert r.status_code == 403
    r = await client.get("/v1/assignments/not-an-id", headers=A1)
    assert r.status_code == 404


async def test_delete_by_date(client):
    gid = await _group(client, "a1", "a2")
    await _batch(client, gid)
    r = await client.post(f"/v1/groups/{gid}/assignments/delete", json={"scheduled_date": "2026-03-02"}, headers=A1)
    assert r.status_code == 403
    r = await client.post(f"/v1/groups/{gid}/assignments/delete", json={"scheduled_date": "2026-03-02"}, headers=COACH)
    assert r.json() == {"deleted": 2}


async def _batch_one(client, gid):
    r = await client.post(
        f"/v1/groups/{gid}/batches",
        json={"name": "Lower A", "scheduled_date": "2026-03-02", "prescriptions": {"a1": _squat(130)}},
        headers=COACH,
    )
    return r.json()["assignments"][0]


async def test_admin_grant_requires_admin_and_key(client):
    ops = {"X-Test-User": "ops"}
    r = await client.post("/v1/admin/credits/grant", json={"user_id": "a1", "amount": 20}, headers=ops)
    assert r.status_code == 400
    headers = {**ops, "Idempotency-Key": "grant-1"}
    r = await client.post("/v1/admin/credits/grant", json={"user_id": "a1", "amount": 20}, headers=headers)
    assert r.json()["balance"] == 20
    r = await client.post("/v1/admin/credits/grant", json={"user_id": "a1", "amount": 20}, headers=headers)
    assert r.json()["balance"] == 20
    r = await client.post(
        "/v1/admin/credits/grant", json={"user_id": "a1", "amount": 20}, headers={**A1, "Idempotency-Key": "x"}
    )
    assert r.status_code == 403
