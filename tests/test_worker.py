from __future__ import annotations

import asyncio
import json
from io import BytesIO

import httpx
from pypdf import PdfReader

from conftest import FakeSource, build_generator
from mission_orders.db import batches_repo, jobs_repo
from mission_orders.db.connection import execute
from mission_orders.schemas.jobs import OrderRef
from mission_orders.services import batches as batch_service
from mission_orders.services import enqueue as enqueue_service
from mission_orders.services.mailer import MailSender
from mission_orders.services.worker import JobWorker

BULK = "mission_orders.bulk_pdf"
ITEMS = [{"match_id": "m1", "official_id": f"o{i}"} for i in range(1, 6)]


def _worker(storage, source, mailer=None, fanout_limit=2) -> JobWorker:
    return JobWorker(
        build_generator(source, storage),
        storage,
        mailer=mailer or MailSender(api_url=""),
        stale_minutes=10,
        fanout_limit=fanout_limit,
    )


def _page_texts(data: bytes):
    return [page.extract_text() for page in PdfReader(BytesIO(data)).pages]


def test_partial_failure_merges_successes_in_order(db, storage):
    source = FakeSource(failing=["m1:o2", "m1:o4"])
    worker = _worker(storage, source)
    queued = asyncio.run(enqueue_service.enqueue(BULK, ITEMS, "u1"))

    summary = asyncio.run(worker.run_cycle())

    assert summary.processed == 1
    assert summary.completed == 1
    job = asyncio.run(jobs_repo.fetch_job(queued.job_id))
    assert job["status"] == "completed"
    assert job["progress"] == 5
    assert job["artifact_path"] == f"batches/{job['dedupe_key']}.pdf"
    merged = asyncio.run(storage.get(job["artifact_path"]))
    texts = _page_texts(merged)
    assert len(texts) == 3
    for text, official in zip(texts, ["o1", "o3", "o5"]):
        assert f"Official {official}" in text
    events = asyncio.run(jobs_repo.fetch_events(queued.job_id))
    assert sum(1 for event in events if event["message"] == "item failed") == 2


def test_all_items_failing_marks_job_failed(db, storage):
    source = FakeSource(failing=[f"m1:o{i}" for i in range(1, 6)])
    worker = _worker(storage, source)
    queued = asyncio.run(enqueue_service.enqueue(BULK, ITEMS, "u1"))

    summary = asyncio.run(worker.run_cycle())

    assert summary.failed == 1
    job = asyncio.run(jobs_repo.fetch_job(queued.job_id))
    assert job["status"] == "failed"
    assert job["artifact_path"] is None
    assert "none of the 5" in job["error_message"]


def test_stale_processing_job_is_reclaimed(db, storage, source):
    worker = _worker(storage, source)
    queued = asyncio.run(enqueue_service.enqueue(BULK, ITEMS[:1], "u1"))
    assert asyncio.run(jobs_repo.claim_job(queued.job_id, worker.stale_before()))

    # a fresh claim is still owned by its (possibly dead) claimant
    assert asyncio.run(worker.run_cycle()).processed == 0

    asyncio.run(
        execute(
            "update jobs set updated_at = '2000-01-01T00:00:00Z' where id = ?",
            (queued.job_id,),
        )
    )
    summary = asyncio.run(worker.run_cycle())
    assert summary.completed == 1
    job = asyncio.run(jobs_repo.fetch_job(queued.job_id))
    assert job["status"] == "completed"
    assert job["attempts"] == 2


def test_retried_job_runs_again(db, storage):
    source = FakeSource(failing=["m1:o1"])
    worker = _worker(storage, source)
    queued = asyncio.run(enqueue_service.enqueue(BULK, ITEMS[:1], "u1"))
    asyncio.run(worker.run_cycle())
    assert asyncio.run(jobs_repo.fetch_job(queued.job_id))["status"] == "failed"

    source.failing.clear()
    asyncio.run(enqueue_service.retry(queued.job_id, "u1"))
    asyncio.run(worker.run_cycle())
    job = asyncio.run(jobs_repo.fetch_job(queued.job_id))
    assert job["status"] == "completed"
    assert job["error_message"] is None


def test_cycle_respects_max_batches_and_priority(db, storage, source):
    worker = _worker(storage, source)
    single = asyncio.run(
        enqueue_service.enqueue("mission_orders.single_pdf", ITEMS[:1], "u1")
    )
    bulk = asyncio.run(enqueue_service.enqueue(BULK, ITEMS[1:3], "u1"))

    summary = asyncio.run(worker.run_cycle(max_batches=1))

    assert summary.processed == 1
    assert asyncio.run(jobs_repo.fetch_job(bulk.job_id))["status"] == "completed"
    assert asyncio.run(jobs_repo.fetch_job(single.job_id))["status"] == "pending"


def test_single_pdf_job_uploads_per_job_copy(db, storage, source):
    worker = _worker(storage, source)
    queued = asyncio.run(
        enqueue_service.enqueue("mission_orders.single_pdf", ITEMS[:1], "u1")
    )
    asyncio.run(worker.run_cycle())
    job = asyncio.run(jobs_repo.fetch_job(queued.job_id))
    assert job["status"] == "completed"
    assert job["artifact_path"] == f"jobs/{queued.job_id}.pdf"
    assert job["progress"] == 1
    assert asyncio.run(storage.get(job["artifact_path"])) == asyncio.run(
        storage.get("mission_orders/1.pdf")
    )


def test_single_email_job_sends_attachment(db, storage, source):
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(json.loads(request.content))
        return httpx.Response(202)

    mailer = MailSender(
        api_url="https://mail.example.com/v3/mail/send",
        api_key="key",
        transport=httpx.MockTransport(handler),
    )
    worker = _worker(storage, source, mailer=mailer)
    queued = asyncio.run(
        enqueue_service.enqueue("mission_orders.single_email", ITEMS[:1], "u1")
    )
    asyncio.run(worker.run_cycle())

    job = asyncio.run(jobs_repo.fetch_job(queued.job_id))
    assert job["status"] == "completed"
    assert job["artifact_path"] == "mission_orders/1.pdf"
    assert len(sent) == 1
    assert sent[0]["personalizations"][0]["to"] == [{"email": "o1@example.com"}]
    assert sent[0]["attachments"][0]["filename"] == "mission_order_1.pdf"


def test_single_email_job_fails_when_delivery_fails(db, storage, source):
    mailer = MailSender(
        api_url="https://mail.example.com/v3/mail/send",
        api_key="key",
        transport=httpx.MockTransport(lambda request: httpx.Response(500, text="down")),
    )
    worker = _worker(storage, source, mailer=mailer)
    queued = asyncio.run(
        enqueue_service.enqueue("mission_orders.single_email", ITEMS[:1], "u1")
    )
    asyncio.run(worker.run_cycle())
    job = asyncio.run(jobs_repo.fetch_job(queued.job_id))
    assert job["status"] == "failed"
    assert "HTTP 500" in job["error_message"]


def test_batch_records_are_processed(db, storage):
    source = FakeSource(failing=["m1:o2"])
    worker = _worker(storage, source)
    started = asyncio.run(batch_service.start_batch(ITEMS[:3], "u1"))
    assert started["status"] == "pending"

    summary = asyncio.run(worker.run_cycle())

    assert summary.batches == 1
    batch = asyncio.run(batches_repo.fetch_batch(started["hash"]))
    assert batch["status"] == "completed"
    assert batch["artifact_path"] == f"batches/{started['hash']}.pdf"
    assert len(_page_texts(asyncio.run(storage.get(batch["artifact_path"])))) == 2


def test_bulk_merge_follows_request_order(db, storage, source):
    worker = _worker(storage, source, fanout_limit=3)
    items = [
        {"matchId": "m1", "officialId": "O3"},
        {"match_id": "m1", "official_id": "o1"},
        {"match_id": "m1", "official_id": "o2"},
    ]
    queued = asyncio.run(enqueue_service.enqueue(BULK, items, "u1"))
    asyncio.run(worker.run_cycle())

    job = asyncio.run(jobs_repo.fetch_job(queued.job_id))
    assert job["status"] == "completed"
    texts = _page_texts(asyncio.run(storage.get(job["artifact_path"])))
    assert len(texts) == 3
    for text, official in zip(texts, ["O3", "o1", "o2"]):
        assert f"Official {official}" in text
    assert "m1:O3" in source.calls


def test_invalid_email_only_fails_email_jobs(db, storage, source):
    source.overrides["m1:o1"] = {"official_email": "not-an-email"}
    sent = []

    def handler(request: httpx.Request) -> httpx.Response:
        sent.append(request)
        return httpx.Response(202)

    mailer = MailSender(
        api_url="https://mail.example.com/v3/mail/send",
        api_key="key",
        transport=httpx.MockTransport(handler),
    )
    worker = _worker(storage, source, mailer=mailer)
    pdf = asyncio.run(enqueue_service.enqueue("mission_orders.single_pdf", ITEMS[:1], "u1"))
    email = asyncio.run(
        enqueue_service.enqueue("mission_orders.single_email", ITEMS[:1], "u1")
    )
    asyncio.run(worker.run_cycle())

    assert asyncio.run(jobs_repo.fetch_job(pdf.job_id))["status"] == "completed"
    failed = asyncio.run(jobs_repo.fetch_job(email.job_id))
    assert failed["status"] == "failed"
    assert "invalid recipient address" in failed["error_message"]
    assert sent == []


def test_running_batch_keeps_its_claim(db, storage, source):
    worker = _worker(storage, source)
    started = asyncio.run(batch_service.start_batch(ITEMS[:2], "u1"))
    batch_hash = started["hash"]
    assert asyncio.run(batches_repo.claim_batch(batch_hash, worker.stale_before()))
    # claimed long ago and still running
    asyncio.run(
        execute(
            "update mission_order_batches set updated_at = '2000-01-01T00:00:00Z' where hash = ?",
            (batch_hash,),
        )
    )
    batch = asyncio.run(batches_repo.fetch_batch(batch_hash))
    orders = [OrderRef(**item) for item in batch["orders"]]
    asyncio.run(worker.generate_all(orders, batch_hash=batch_hash))

    eligible = asyncio.run(batches_repo.fetch_eligible_batches(worker.stale_before(), 10))
    assert eligible == []
    assert asyncio.run(batches_repo.fetch_batch(batch_hash))["status"] == "processing"
