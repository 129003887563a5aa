"""Periodic batch worker.

A cycle picks up pending jobs plus jobs stuck in ``processing`` longer than
the stale window, claims each one with a conditional status flip and runs
it. There are no row locks: if a claimant dies, the job is simply claimed
again by a later cycle, so a job can run more than once.

That is only safe while every effect below stays idempotent:

* document generation is content-addressed, so a second run over unchanged
  source data returns the stored bytes without allocating a new number;
* uploads go to deterministic paths (``batches/<key>.pdf``,
  ``jobs/<id>.pdf``) and overwrite;
* the final status write is a plain overwrite of the row.

E-mail delivery is the one effect that repeats on a re-run; it is treated
as an idempotent sink (a duplicate message, not corrupted state). Any new
side effect added here has to keep these properties.
"""

import asyncio
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

from pydantic import ValidationError as PydanticValidationError

from mission_orders.core import config
from mission_orders.core.errors import DocumentError, FatalJobFailure
from mission_orders.core.logging import logger
from mission_orders.db import batches_repo, jobs_repo
from mission_orders.schemas.jobs import (
    BulkPdfPayload,
    CycleSummary,
    JobKind,
    OrderRef,
    SingleEmailPayload,
    SinglePdfPayload,
    parse_payload,
)
from mission_orders.services.documents import DocumentGenerator
from mission_orders.services.mailer import Attachment, MailSender, validate_address
from mission_orders.services.render.merge import merge_documents
from mission_orders.services.storage import LocalStorage
from mission_orders.utils.time import utc_ago
from mission_orders.websocket.manager import manager

HandlerResult = Tuple[str, int]

EMAIL_SUBJECT = "أمر بمهمة رقم {number}"
EMAIL_TEXT = "تجدون في المرفق أمر المهمة الخاص بكم رقم {number}."
EMAIL_HTML = '<div dir="rtl"><p>تجدون في المرفق أمر المهمة الخاص بكم رقم <strong>{number}</strong>.</p></div>'


def batch_artifact_path(key: str) -> str:
    return f"batches/{key}.pdf"


def job_artifact_path(job_id: str) -> str:
    return f"jobs/{job_id}.pdf"


class JobWorker:
    def __init__(
        self,
        generator: DocumentGenerator,
        storage: LocalStorage,
        mailer: Optional[MailSender] = None,
        stale_minutes: Optional[int] = None,
        fanout_limit: Optional[int] = None,
    ) -> None:
        self.generator = generator
        self.storage = storage
        self.mailer = mailer or MailSender()
        self.stale_minutes = (
            config.STALE_MINUTES if stale_minutes is None else stale_minutes
        )
        self.fanout_limit = max(1, fanout_limit or config.JOB_FANOUT_LIMIT)
        self.handlers: Dict[str, Callable[[Dict[str, Any], Any], Any]] = {
            JobKind.bulk_pdf.value: self._run_bulk_pdf,
            JobKind.single_pdf.value: self._run_single_pdf,
            JobKind.single_email.value: self._run_single_email,
        }

    def stale_before(self) -> str:
        return utc_ago(self.stale_minutes * 60)

    async def run_cycle(self, max_batches: Optional[int] = None) -> CycleSummary:
        limit = max_batches or config.MAX_JOBS_PER_CYCLE
        stale_before = self.stale_before()

        claimed: List[Dict[str, Any]] = []
        for job in await jobs_repo.fetch_eligible_jobs(stale_before, limit):
            if await jobs_repo.claim_job(job["id"], stale_before):
                claimed.append(job)
            else:
                logger.info("job %s claimed elsewhere, skipping", job["id"])

        batches: List[Dict[str, Any]] = []
        for batch in await batches_repo.fetch_eligible_batches(stale_before, limit):
            if await batches_repo.claim_batch(batch["hash"], stale_before):
                batches.append(batch)

        outcomes = await asyncio.gather(
            *(self.process_job(job) for job in claimed),
            *(self.process_batch(batch) for batch in batches),
        )
        job_outcomes = outcomes[: len(claimed)]
        summary = CycleSummary(
            processed=len(claimed),
            completed=sum(1 for status in job_outcomes if status == "completed"),
            failed=sum(1 for status in job_outcomes if status == "failed"),
            batches=len(batches),
        )
        if claimed or batches:
            await manager.emit_log(
                "info",
                f"cycle done: {summary.processed} jobs "
                f"({summary.completed} completed, {summary.failed} failed), "
                f"{summary.batches} batch records",
            )
        return summary

    async def process_job(self, job: Dict[str, Any]) -> str:
        job_id = job["id"]
        await manager.job_status(job_id, "processing")
        await jobs_repo.record_event(
            job_id, "info", "job claimed", {"attempt": job["attempts"] + 1}
        )
        try:
            handler = self.handlers.get(job["type"])
            if handler is None:
                raise FatalJobFailure(f"unsupported job type {job['type']}")
            try:
                payload = parse_payload(job["payload"])
            except PydanticValidationError as exc:
                raise FatalJobFailure(f"malformed payload: {exc}") from exc
            artifact_path, progress = await handler(job, payload)
        except FatalJobFailure as exc:
            return await self._fail(job_id, str(exc))
        except Exception as exc:
            logger.exception("job %s crashed", job_id)
            return await self._fail(job_id, f"unexpected error: {exc}")

        await jobs_repo.complete_job(job_id, artifact_path, progress)
        await jobs_repo.record_event(
            job_id, "info", "job completed", {"artifact_path": artifact_path}
        )
        await manager.job_status(job_id, "completed", artifact_path=artifact_path)
        await manager.emit_log("info", f"job completed {job_id} -> {artifact_path}")
        return "completed"

    async def _fail(self, job_id: str, message: str) -> str:
        await jobs_repo.fail_job(job_id, message)
        await jobs_repo.record_event(job_id, "error", "job failed", {"error": message})
        await manager.job_status(job_id, "failed", error=message)
        await manager.emit_log("error", f"job failed {job_id}: {message}")
        return "failed"

    async def generate_all(
        self,
        orders: Sequence[OrderRef],
        job_id: Optional[str] = None,
        batch_hash: Optional[str] = None,
    ) -> List[Optional[bytes]]:
        """Generate every order with bounded concurrency.

        The result list lines up with ``orders``; failed items are ``None``.
        Each finished item refreshes the owning job or batch record so a long
        run is not reclaimed as stale.
        """
        semaphore = asyncio.Semaphore(self.fanout_limit)
        total = len(orders)
        done = 0

        async def one(order: OrderRef) -> Optional[bytes]:
            nonlocal done
            async with semaphore:
                try:
                    data: Optional[bytes] = await self.generator.generate(order)
                except DocumentError as exc:
                    logger.warning("order %s failed: %s", order.subject_key, exc)
                    if job_id:
                        await jobs_repo.record_event(
                            job_id,
                            "warn",
                            "item failed",
                            {"order": order.subject_key, "error": str(exc)},
                        )
                    data = None
            done += 1
            if job_id:
                await jobs_repo.bump_progress(job_id, done)
                await manager.job_progress(job_id, done, total)
            elif batch_hash:
                await batches_repo.touch_batch(batch_hash)
            return data

        return await asyncio.gather(*(one(order) for order in orders))

    async def merge_and_upload(
        self, results: Sequence[Optional[bytes]], path: str
    ) -> int:
        documents = [data for data in results if data is not None]
        if not documents:
            raise FatalJobFailure(
                f"none of the {len(results)} mission orders could be generated"
            )
        try:
            merged = await asyncio.to_thread(merge_documents, documents)
            await self.storage.put(path, merged)
        except DocumentError as exc:
            raise FatalJobFailure(f"could not store merged document: {exc}") from exc
        return len(documents)

    async def _run_bulk_pdf(
        self, job: Dict[str, Any], payload: BulkPdfPayload
    ) -> HandlerResult:
        results = await self.generate_all(payload.orders, job_id=job["id"])
        path = batch_artifact_path(job["dedupe_key"] or job["id"])
        succeeded = await self.merge_and_upload(results, path)
        if succeeded < len(results):
            await manager.emit_log(
                "warn",
                f"job {job['id']}: {len(results) - succeeded} of {len(results)} orders skipped",
            )
        return path, len(results)

    async def _run_single_pdf(
        self, job: Dict[str, Any], payload: SinglePdfPayload
    ) -> HandlerResult:
        try:
            data = await self.generator.generate(payload.order)
            path = await self.storage.put(job_artifact_path(job["id"]), data)
        except DocumentError as exc:
            raise FatalJobFailure(str(exc)) from exc
        await jobs_repo.bump_progress(job["id"], 1)
        return path, 1

    async def _run_single_email(
        self, job: Dict[str, Any], payload: SingleEmailPayload
    ) -> HandlerResult:
        try:
            details = await self.generator.source.fetch_details(payload.order)
            address = validate_address(details.official_email)
            data, record = await self.generator.generate_with_record(payload.order)
            number = record["sequence_number"]
            await self.mailer.send(
                [address],
                EMAIL_SUBJECT.format(number=number),
                EMAIL_HTML.format(number=number),
                EMAIL_TEXT.format(number=number),
                [Attachment(f"mission_order_{number}.pdf", data)],
            )
        except DocumentError as exc:
            raise FatalJobFailure(str(exc)) from exc
        await jobs_repo.bump_progress(job["id"], 1)
        return record["storage_path"], 1

    async def process_batch(self, batch: Dict[str, Any]) -> str:
        batch_hash = batch["hash"]
        try:
            orders = [OrderRef(**item) for item in batch["orders"]]
            results = await self.generate_all(orders, batch_hash=batch_hash)
            path = batch_artifact_path(batch_hash)
            await self.merge_and_upload(results, path)
        except FatalJobFailure as exc:
            await batches_repo.fail_batch(batch_hash, str(exc))
            await manager.emit_log("error", f"batch failed {batch_hash}: {exc}")
            return "failed"
        except Exception as exc:
            logger.exception("batch %s crashed", batch_hash)
            await batches_repo.fail_batch(batch_hash, f"unexpected error: {exc}")
            return "failed"
        await batches_repo.complete_batch(batch_hash, path)
        await manager.emit_log("info", f"batch completed {batch_hash} -> {path}")
        return "completed"
