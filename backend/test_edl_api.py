"""End-to-end tests for the EDL and timeline HTTP endpoints"""

import asyncio

import pytest

from conftest import PROJECT_ID, RecordingDispatcher, make_shot
from shotline.api.deps import get_dispatcher
from shotline.config import get_settings
from shotline.main import app
from shotline.models import EdlJob
from shotline.services.pipeline_dispatcher import PipelineDispatchError

BASE = f"/timeline/{PROJECT_ID}"
INTENT = {"userIntent": "Create a short video about losing my keys"}


def submit(client, headers, body=INTENT):
    return client.post(f"{BASE}/generate-edl-async", json=body, headers=headers)


def report(client, job_id, step_number, body, headers=None):
    return client.post(
        f"{BASE}/generate-edl-async/{job_id}/steps/{step_number}",
        json=body,
        headers=headers or {},
    )


def run_pipeline(client, job_id, shots, **results):
    for step_number in (1, 2, 3):
        assert report(client, job_id, step_number, {"status": "completed"}).status_code == 200
    body = {"status": "completed", "results": {"shotList": shots, **results}}
    response = report(client, job_id, 4, body)
    assert response.status_code == 200
    return response.json()


@pytest.fixture
def job_id(client, auth_headers, project):
    response = submit(client, auth_headers)
    assert response.status_code == 201
    return response.json()["jobId"]


@pytest.fixture
def completed_job_id(client, job_id, videos, shot_list):
    run_pipeline(client, job_id, shot_list, finalDuration=14.0, scriptCoverage=88.0, totalChunks=3)
    return job_id


class TestGenerate:

    def test_requires_user(self, client, project):
        assert submit(client, {}).status_code == 401

    def test_created(self, client, auth_headers, project, dispatcher):
        response = submit(client, auth_headers, {**INTENT, "scriptContent": "Where are my keys?"})

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "running"
        assert data["message"] == "EDL generation started successfully"
        assert dispatcher.payloads[0]["job_id"] == data["jobId"]
        assert dispatcher.payloads[0]["script_content"] == "Where are my keys?"

    def test_active_job_returned(self, client, auth_headers, job_id, dispatcher):
        response = submit(client, auth_headers)

        assert response.status_code == 200
        assert response.json()["jobId"] == job_id
        assert response.json()["message"] == "EDL generation already in progress for this project"
        assert len(dispatcher.payloads) == 1

    def test_missing_intent(self, client, auth_headers, project, db):
        response = submit(client, auth_headers, {"userIntent": "  "})
        assert response.status_code == 400
        assert response.json()["detail"] == "User intent is required"
        assert db.query(EdlJob).count() == 0

    def test_unknown_project(self, client, auth_headers):
        response = client.post("/timeline/project-404/generate-edl-async", json=INTENT, headers=auth_headers)
        assert response.status_code == 404

    def test_pipeline_rejection(self, client, auth_headers, project):
        app.dependency_overrides[get_dispatcher] = lambda: RecordingDispatcher(
            PipelineDispatchError("Pipeline returned 503: Service Unavailable")
        )

        response = submit(client, auth_headers)

        assert response.status_code == 500
        data = response.json()
        assert data["error"] == "EDL generation failed"
        assert "503" in data["message"]

        status = client.get(f"{BASE}/generate-edl-async", params={"jobId": data["jobId"]}, headers=auth_headers)
        assert status.json()["status"] == "failed"
        assert status.json()["error"]["step"] == "pipeline_invocation"

    def test_handoff_runs_off_the_event_loop(self, client, auth_headers, project):
        class ThreadRecordingDispatcher(RecordingDispatcher):
            def dispatch(self, payload):
                try:
                    asyncio.get_running_loop()
                    self.payloads.append("event loop")
                except RuntimeError:
                    self.payloads.append("worker thread")

        dispatcher = ThreadRecordingDispatcher()
        app.dependency_overrides[get_dispatcher] = lambda: dispatcher

        assert submit(client, auth_headers).status_code == 201
        assert dispatcher.payloads == ["worker thread"]


class TestStatus:

    def test_requires_job_id(self, client, auth_headers, job_id):
        response = client.get(f"{BASE}/generate-edl-async", headers=auth_headers)
        assert response.status_code == 400

    def test_unknown_job(self, client, auth_headers, job_id):
        response = client.get(f"{BASE}/generate-edl-async", params={"jobId": "missing"}, headers=auth_headers)
        assert response.status_code == 404

    def test_other_user(self, client, job_id):
        response = client.get(
            f"{BASE}/generate-edl-async", params={"jobId": job_id}, headers={"X-User-Id": "someone-else"}
        )
        assert response.status_code == 404

    def test_other_project(self, client, auth_headers, job_id):
        response = client.get(
            "/timeline/project-2/generate-edl-async", params={"jobId": job_id}, headers=auth_headers
        )
        assert response.status_code == 404

    def test_running_snapshot(self, client, auth_headers, job_id):
        data = client.get(f"{BASE}/generate-edl-async", params={"jobId": job_id}, headers=auth_headers).json()

        assert data["jobId"] == job_id
        assert data["status"] == "running"
        assert data["currentStep"] == "script_analysis"
        assert data["progress"] == {"completed": 0, "total": 4, "percentage": 0}
        assert [s["status"] for s in data["steps"]] == ["running", "pending", "pending", "pending"]

    def test_completed_snapshot(self, client, auth_headers, completed_job_id):
        data = client.get(
            f"{BASE}/generate-edl-async", params={"jobId": completed_job_id}, headers=auth_headers
        ).json()

        assert data["status"] == "completed"
        assert data["progress"]["percentage"] == 100
        assert data["results"] == {
            "finalDuration": 14.0,
            "scriptCoverage": 88.0,
            "totalChunks": 3,
            "canCreateTimeline": True,
        }


class TestStepCallbacks:

    def test_running_then_completed(self, client, job_id):
        assert report(client, job_id, 1, {"status": "completed"}).json()["progress"]["completed"] == 1
        data = report(client, job_id, 2, {"status": "running"}).json()
        assert data["currentStep"] == "content_matching"
        assert data["steps"][1]["status"] == "running"

    def test_failure(self, client, job_id):
        data = report(client, job_id, 1, {"status": "failed", "errorMessage": "Script too short"}).json()
        assert data["status"] == "failed"
        assert data["error"] == {"message": "Script too short", "step": "script_analysis"}
        assert [s["status"] for s in data["steps"]] == ["failed", "pending", "pending", "pending"]

    def test_out_of_order_rejected(self, client, job_id):
        response = report(client, job_id, 3, {"status": "running"})
        assert response.status_code == 409

    def test_terminal_job_rejected(self, client, completed_job_id):
        response = report(client, completed_job_id, 1, {"status": "running"})
        assert response.status_code == 409

    def test_invalid_step_number(self, client, job_id):
        assert report(client, job_id, 5, {"status": "running"}).status_code == 400

    def test_unknown_job(self, client, project):
        assert report(client, "missing", 1, {"status": "running"}).status_code == 404

    def test_malformed_shot_list(self, client, auth_headers, job_id):
        for step_number in (1, 2, 3):
            report(client, job_id, step_number, {"status": "completed"})
        bad = [make_shot("IMG_1462_chunk_1_0.0-0.0s", 0, 0.0, 1.0)]

        response = report(client, job_id, 4, {"status": "completed", "results": {"shotList": bad}})

        assert response.status_code == 422
        status = client.get(f"{BASE}/generate-edl-async", params={"jobId": job_id}, headers=auth_headers)
        assert status.json()["status"] == "running"

    def test_duplicate_shot_numbers_rejected(self, client, auth_headers, job_id, shot_list):
        for step_number in (1, 2, 3):
            report(client, job_id, step_number, {"status": "completed"})
        shots = shot_list + [make_shot("IMG_1462_chunk_2_5.0-7.0s", 2, 5.0, 7.0)]

        response = report(client, job_id, 4, {"status": "completed", "results": {"shotList": shots}})

        assert response.status_code == 422
        assert "Duplicate shot_number" in response.json()["detail"]
        status = client.get(f"{BASE}/generate-edl-async", params={"jobId": job_id}, headers=auth_headers)
        assert status.json()["status"] == "running"

    def test_token_required_when_configured(self, client, job_id, monkeypatch):
        monkeypatch.setattr(get_settings(), "PIPELINE_CALLBACK_TOKEN", "s3cret")

        assert report(client, job_id, 1, {"status": "running"}).status_code == 401
        assert report(client, job_id, 1, {"status": "running"}, {"X-Pipeline-Token": "wrong"}).status_code == 401
        assert report(client, job_id, 1, {"status": "running"}, {"X-Pipeline-Token": "s3cret"}).status_code == 200


class TestShotList:

    def test_latest_completed(self, client, auth_headers, completed_job_id):
        data = client.get(f"{BASE}/shot-list", headers=auth_headers).json()

        assert data["jobId"] == completed_job_id
        assert data["shotCount"] == 3
        assert data["totalDuration"] == pytest.approx(14.0)
        assert [s["shot_number"] for s in data["shots"]] == [1, 2, 3]

    def test_no_completed_job(self, client, auth_headers, job_id):
        response = client.get(f"{BASE}/shot-list", headers=auth_headers)
        assert response.status_code == 404

    def test_running_job_by_id(self, client, auth_headers, job_id):
        response = client.get(f"{BASE}/shot-list", params={"jobId": job_id}, headers=auth_headers)
        assert response.status_code == 404


class TestApplyShotList:

    def test_apply(self, client, auth_headers, completed_job_id):
        response = client.post(f"{BASE}/apply-shot-list", json={}, headers=auth_headers)

        assert response.status_code == 200
        data = response.json()
        assert data["applied"] == 3
        assert data["skipped"] == 0
        assert data["totalShots"] == 3
        assert data["durationMs"] == 14000
        assert data["message"] == "Compiled 3 of 3 shots"
        assert data["jobId"] == completed_job_id
        assert data["strategy"] == "direct"
        assert len(data["itemIds"]) == 3
        assert data["timelineDuration"] == 14000
        assert data["revision"] == 1

        timeline = client.get(BASE, headers=auth_headers).json()
        state = timeline["state"]
        assert timeline["revision"] == 1
        assert state["tracks"][0]["id"] == "main"
        assert state["tracks"][0]["items"] == data["itemIds"]
        placements = [state["trackItemsMap"][i]["display"] for i in data["itemIds"]]
        assert placements == [{"from": 0, "to": 4600}, {"from": 4600, "to": 8400}, {"from": 8400, "to": 14000}]
        first = state["trackItemsMap"][data["itemIds"][0]]
        assert first["trim"] == {"from": 200, "to": 4800}
        assert first["details"]["src"] == (
            "https://shotline-uploads.s3.us-east-1.amazonaws.com/uploads/IMG_1462.mp4"
        )

    @pytest.mark.parametrize("strategy", ["direct", "event_batch"])
    def test_reapply_is_noop(self, client, auth_headers, completed_job_id, strategy):
        body = {"jobId": completed_job_id, "strategy": strategy}
        first = client.post(f"{BASE}/apply-shot-list", json=body, headers=auth_headers).json()
        second = client.post(f"{BASE}/apply-shot-list", json=body, headers=auth_headers).json()

        assert second["revision"] == first["revision"] == 1
        assert second["itemIds"] == first["itemIds"]
        assert second["strategy"] == strategy

    def test_unmatched_shots_reported(self, client, auth_headers, job_id, videos, shot_list):
        shots = shot_list + [make_shot("DSC_0001_chunk_1_0.0-0.0s", 4, 0.0, 2.0)]
        run_pipeline(client, job_id, shots)

        data = client.post(
            f"{BASE}/apply-shot-list", json={"itemized": True, "trackId": "edl"}, headers=auth_headers
        ).json()

        assert data["applied"] == 3
        assert data["skipped"] == 1
        assert data["message"] == "Could not match 1 of 4 shots"
        assert data["skippedShots"] == [
            {"shot_number": 4, "chunk_id": "DSC_0001_chunk_1_0.0-0.0s", "reason": "no_match"}
        ]
        state = client.get(BASE, headers=auth_headers).json()["state"]
        assert [t["id"] for t in state["tracks"]] == ["edl"]

    def test_no_completed_job(self, client, auth_headers, job_id):
        response = client.post(f"{BASE}/apply-shot-list", json={}, headers=auth_headers)
        assert response.status_code == 404

    def test_unknown_strategy(self, client, auth_headers, completed_job_id):
        response = client.post(f"{BASE}/apply-shot-list", json={"strategy": "sequential"}, headers=auth_headers)
        assert response.status_code == 422

    def test_timeline_not_ready(self, client, auth_headers, completed_job_id, monkeypatch):
        monkeypatch.setattr(get_settings(), "TIMELINE_READY_TIMEOUT_SECONDS", 0.05)
        monkeypatch.setattr(get_settings(), "TIMELINE_READY_POLL_SECONDS", 0.01)
        app.state.timelines.get(PROJECT_ID).mark_ready(False)

        response = client.post(f"{BASE}/apply-shot-list", json={}, headers=auth_headers)

        assert response.status_code == 409
        assert client.get(BASE, headers=auth_headers).json()["revision"] == 0

    def test_undo(self, client, auth_headers, completed_job_id):
        client.post(f"{BASE}/apply-shot-list", json={}, headers=auth_headers)

        data = client.post(f"{BASE}/undo", headers=auth_headers).json()
        assert data["undone"] is True
        assert data["revision"] == 2
        assert data["state"]["tracks"] == []

        assert client.post(f"{BASE}/undo", headers=auth_headers).json()["undone"] is False

    def test_other_user_cannot_touch_timeline(self, client, auth_headers, completed_job_id):
        client.post(f"{BASE}/apply-shot-list", json={}, headers=auth_headers)
        intruder = {"X-User-Id": "intruder"}

        assert client.get(BASE, headers=intruder).status_code == 404
        assert client.post(f"{BASE}/undo", headers=intruder).status_code == 404
        assert client.post(f"{BASE}/apply-shot-list", json={}, headers=intruder).status_code == 404

        timeline = client.get(BASE, headers=auth_headers).json()
        assert timeline["revision"] == 1
        assert len(timeline["state"]["trackItemIds"]) == 3

    def test_unknown_project(self, client, auth_headers, project):
        assert client.get("/timeline/project-404", headers=auth_headers).status_code == 404
        assert client.post("/timeline/project-404/undo", headers=auth_headers).status_code == 404


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
