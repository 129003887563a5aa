import os

from fastapi import FastAPI

from mission_orders.api import batches, events, health, jobs, status, verify
from mission_orders.core import config
from mission_orders.core.logging import setup_logging
from mission_orders.db.connection import close_db, connect_db
from mission_orders.services.documents import DocumentGenerator
from mission_orders.services.mailer import MailSender
from mission_orders.services.render.assets import AssetCache, AssetManifest
from mission_orders.services.scheduler import start_scheduler, stop_scheduler
from mission_orders.services.source_data import HttpSourceDataClient
from mission_orders.services.storage import LocalStorage
from mission_orders.services.worker import JobWorker
from mission_orders.websocket.manager import manager

app = FastAPI(title="Mission Orders Backend", version="0.1.0")

app.include_router(health.router)
app.include_router(status.router)
app.include_router(jobs.router)
app.include_router(batches.router)
app.include_router(verify.router)
app.include_router(events.router)


def build_worker() -> JobWorker:
    storage = LocalStorage()
    generator = DocumentGenerator(
        source=HttpSourceDataClient(),
        storage=storage,
        assets=AssetCache(),
        manifest=AssetManifest.from_config(),
    )
    return JobWorker(generator, storage, MailSender())


@app.on_event("startup")
async def on_startup() -> None:
    config.ensure_dirs()
    setup_logging()
    await connect_db(config.DB_PATH)
    app.state.worker = build_worker()
    await start_scheduler(app.state.worker)
    await manager.emit_log("info", "backend started")


@app.on_event("shutdown")
async def on_shutdown() -> None:
    await stop_scheduler()
    await close_db()


def run() -> None:
    import uvicorn

    port = int(os.environ.get("BACKEND_PORT", "49671"))
    uvicorn.run(
        "mission_orders.main:app",
        host="127.0.0.1",
        port=port,
        log_level="info",
    )


if __name__ == "__main__":
    run()
