"""
HTTP surface: liveness endpoints and the transport webhook.

The webhook only enqueues; message handling happens on the worker
pool so the transport gets its acknowledgement immediately.
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Optional

import structlog
from fastapi import FastAPI, Header, HTTPException, Request

from ledgerbot import __version__
from ledgerbot.orchestrator import AppComponents
from ledgerbot.services.transport import parse_webhook_message

logger = structlog.get_logger(__name__)


def create_http_app(
    components: AppComponents,
    webhook_secret: Optional[str] = None,
    run_background: bool = True,
) -> FastAPI:
    """
    Build the FastAPI application around already wired components.

    With `run_background`, the lifespan starts the worker pool and the
    auth relay and stops both on shutdown.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        relay_task = None
        if run_background:
            components.pool.start()
            relay_task = asyncio.create_task(components.relay.run(), name="auth-relay")
        try:
            yield
        finally:
            if relay_task is not None:
                relay_task.cancel()
                await asyncio.gather(relay_task, return_exceptions=True)
            if run_background:
                await components.pool.stop()
            close = getattr(components.transport, "close", None)
            if close is not None:
                await close()

    app = FastAPI(title="Ledger Bot", version=__version__, lifespan=lifespan)

    @app.get("/")
    @app.get("/health")
    async def health():
        return {"status": "ok"}

    @app.post("/webhook")
    async def webhook(
        request: Request,
        x_webhook_secret: Optional[str] = Header(default=None),
    ):
        if webhook_secret and x_webhook_secret != webhook_secret:
            raise HTTPException(status_code=401, detail="invalid webhook secret")

        try:
            payload = await request.json()
        except ValueError:
            raise HTTPException(status_code=400, detail="body must be JSON")
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="body must be a JSON object")

        message = parse_webhook_message(payload)
        if message is None:
            return {"ok": True, "queued": False}

        await components.pool.submit(message)
        logger.debug("message_queued", address=message.from_address)
        return {"ok": True, "queued": True}

    return app
