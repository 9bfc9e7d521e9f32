"""
Ledger Bot entrypoint

Wires every component from the environment and serves the webhook
with uvicorn. Point the WPPConnect server's webhook at
http://<host>:<port>/webhook.

Run with:
    python -m app.main
"""

import structlog
import uvicorn

from ledgerbot.api import create_http_app
from ledgerbot.audit import configure_logging
from ledgerbot.config import get_settings, validate_all_settings
from ledgerbot.orchestrator import create_app_components

logger = structlog.get_logger("ledgerbot.main")


def main() -> None:
    settings = get_settings()
    app_settings = settings.app
    configure_logging(app_settings.debug_mode)

    status = validate_all_settings()
    for name in ("gemini", "wppconnect", "google_sheets", "app"):
        if not status[name]:
            logger.warning("settings_invalid", section=name, error=status[f"{name}_error"])

    components = create_app_components(settings)
    app = create_http_app(
        components,
        webhook_secret=settings.wppconnect.webhook_secret,
    )

    logger.info(
        "starting_http_server",
        host=app_settings.http_host,
        port=app_settings.http_port,
        storage_backend=app_settings.storage_backend,
    )
    uvicorn.run(
        app,
        host=app_settings.http_host,
        port=app_settings.http_port,
        log_level="debug" if app_settings.debug_mode else "info",
    )


if __name__ == "__main__":
    main()
