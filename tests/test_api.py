from __future__ import annotations

import asyncio
from pathlib import Path

import pytest
from fastapi.testclient import TestClient

from conftest import FakeSource, build_generator
from mission_orders.core import config
from mission_orders.main import app
from mission_orders.schemas.jobs import OrderRef
from mission_orders.services.mailer import MailSender
from mission_orders.services.storage import LocalStorage
from mission_orders.services.worker import JobWorker

ITEMS = [{"matchId": "M1", "officialId": "O1"}, {"matchId": "M1", "officialId": "O2"}]


@pytest.fixture
def client(tmp_path: Path, monkeypatch):
    monkeypatch.setattr(config, "APP_DATA_DIR", str(tmp_path))
    monkeypatch.setattr(config, "LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.setattr(config, "STORAGE_DIR", str(tmp_path / "storage"))
    monkeypatch.setattr(config, "DB_PATH", str(tmp_path / "api.db"))
    with TestClient(app) as test_client:
        storage = LocalStorage(str(tmp_path / "storage"))
        source = FakeSource(failing=["M1:O2"])
        app.state.worker = JobWorker(
            build_generator(source, storage), storage, mailer=MailSender(api_url="")
        )
        yield test_client


def test_health(client):
    response = client.get("/health")
    assert response.status_code == 200
    body = response.json()
    assert body["status"] == "ok"
    assert body["pending_jobs"] == 0


def test_enqueue_requires_caller(client):
    response = client.post(
        "/jobs/enqueue", json={"type": "mission_orders.bulk_pdf", "items": ITEMS}
    )
    assert response.status_code == 401


def test_enqueue_validates_items(client):
    response = client.post(
        "/jobs/enqueue",
        json={"type": "mission_orders.bulk_pdf", "items": []},
        headers={"X-User-Id": "u1"},
    )
    assert response.status_code == 400


def test_enqueue_run_and_inspect(client):
    headers = {"X-User-Id": "u1"}
    first = client.post(
        "/jobs/enqueue",
        json={"type": "mission_orders.bulk_pdf", "items": ITEMS, "fileName": "week-12"},
        headers=headers,
    ).json()
    again = client.post(
        "/jobs/enqueue",
        json={"type": "mission_orders.bulk_pdf", "items": list(reversed(ITEMS))},
        headers=headers,
    ).json()
    assert first["reused"] is False
    assert again == {**first, "reused": True}

    summary = client.post("/jobs/run-cycle", params={"max_batches": 5}).json()
    assert summary == {"processed": 1, "completed": 1, "failed": 0, "batches": 0}

    job = client.get(f"/jobs/{first['jobId']}").json()
    assert job["status"] == "completed"
    assert job["progress"] == 2
    assert job["artifactPath"].startswith("batches/")
    assert any(event["message"] == "item failed" for event in job["events"])

    listed = client.get("/jobs", headers=headers).json()["jobs"]
    assert [row["id"] for row in listed] == [first["jobId"]]
    assert client.get("/jobs", headers={"X-User-Id": "u2"}).json()["jobs"] == []

    status = client.get("/status").json()
    assert status["jobs"] == {"completed": 1}
    assert status["scheduler"]["running"] is False


def test_retry_flow(client):
    headers = {"X-User-Id": "u1"}
    queued = client.post(
        "/jobs/enqueue",
        json={"type": "mission_orders.single_pdf", "items": [ITEMS[1]]},
        headers=headers,
    ).json()
    client.post("/jobs/run-cycle")
    failed = client.get(f"/jobs/{queued['jobId']}").json()
    assert failed["status"] == "failed"
    assert failed["errorMessage"]

    assert client.post(f"/jobs/{queued['jobId']}/retry", headers={"X-User-Id": "u2"}).status_code == 404
    response = client.post(f"/jobs/{queued['jobId']}/retry", headers=headers)
    assert response.status_code == 200
    body = response.json()
    assert body["success"] is True
    assert body["job"]["status"] == "pending"
    assert body["job"]["progress"] == 0
    assert body["job"]["errorMessage"] is None
    assert client.post(f"/jobs/{queued['jobId']}/retry", headers=headers).status_code == 409


def test_unknown_job_is_404(client):
    assert client.get("/jobs/job_missing").status_code == 404


def test_batch_flow(client):
    headers = {"X-User-Id": "u1"}
    started = client.post("/batches", json={"orders": [ITEMS[0]]}, headers=headers).json()
    assert started["status"] == "pending"
    assert client.post("/batches", json={"orders": [ITEMS[0]]}, headers=headers).json()["hash"] == started["hash"]

    client.post("/jobs/run-cycle")
    batch = client.get(f"/batches/{started['hash']}").json()
    assert batch["status"] == "completed"
    assert batch["artifactPath"] == f"batches/{started['hash']}.pdf"
    assert client.get("/batches/unknown").json()["status"] == "not_found"

    queued = client.post(
        "/jobs/enqueue",
        json={"type": "mission_orders.single_pdf", "items": [ITEMS[0]]},
        headers=headers,
    ).json()
    client.post("/jobs/run-cycle")
    assert client.get(f"/jobs/{queued['jobId']}").json()["status"] == "completed"


def test_verify_endpoint(client):
    generator = app.state.worker.generator
    _, record = asyncio.run(
        generator.generate_with_record(OrderRef(match_id="m1", official_id="o1"))
    )
    response = client.get(f"/verify/{record['id']}")
    assert response.status_code == 200
    body = response.json()
    assert body["name"] == "Official o1"
    assert body["orderNumber"] == str(record["sequence_number"])
    assert "storagePath" not in body and "storage_path" not in body
    assert client.get("/verify/does-not-exist").status_code == 404


def test_non_object_items_are_rejected_with_400(client):
    headers = {"X-User-Id": "u1"}
    response = client.post(
        "/jobs/enqueue",
        json={"type": "mission_orders.bulk_pdf", "items": ["m1:o1"]},
        headers=headers,
    )
    assert response.status_code == 400
    assert client.post("/batches", json={"orders": [42]}, headers=headers).status_code == 400


def test_events_stream_answers_ping(client):
    with client.websocket_connect("/events") as websocket:
        hello = websocket.receive_json()
        assert hello["type"] == "connected"
        assert hello["scheduler"]["running"] is False
        websocket.send_text("ping")
        assert websocket.receive_json()["type"] == "pong"
