from __future__ import annotations

import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI, Query, Request

from nmr import db
from nmr.api_models import CycleOut, EventOut, StatusResponse
from nmr.reconciler import Reconciler
from nmr.settings import settings
from nmr.wiring import build_reconciler


def configure_logging(level: int = logging.INFO) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        datefmt="%Y-%m-%d %H:%M:%S",
    )


def create_app(reconciler: Reconciler | None = None, start_loop: bool = True) -> FastAPI:
    """Status API around a running reconciler.

    The reconciler thread is started with the app and stopped on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        configure_logging()
        db.init_db()
        rec = reconciler or build_reconciler(settings)
        app.state.reconciler = rec
        if start_loop:
            rec.start()
        try:
            yield
        finally:
            rec.stop()

    app = FastAPI(title="Node Membership Reconciler", lifespan=lifespan)

    @app.get("/health")
    def health() -> dict[str, str]:
        return {"status": "healthy"}

    @app.get("/status", response_model=StatusResponse)
    def status(request: Request) -> StatusResponse:
        rec: Reconciler = request.app.state.reconciler
        applied, last, last_applied_at, counts = rec.runtime.snapshot()
        last_cycle = None
        if last is not None:
            last_cycle = CycleOut(
                outcome=last.outcome,
                ts=last.ts,
                fetched=list(last.fetched) if last.fetched is not None else None,
                added=list(last.added),
                removed=list(last.removed),
                message=last.message,
            )
        return StatusResponse(
            applier=rec.applier.describe(),
            running=rec.is_running(),
            interval_s=rec.interval_s,
            applied=list(applied),
            last_applied_at=last_applied_at,
            last_cycle=last_cycle,
            cycles=counts,
        )

    @app.get("/events", response_model=list[EventOut])
    def events(limit: int = Query(50, ge=1, le=1000)) -> list[dict]:
        return db.latest_events(limit)

    return app


app = create_app()
