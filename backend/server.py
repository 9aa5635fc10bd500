"""FastAPI server for the newsdesk review bot.

Run with ``uvicorn server:create_app --factory`` from the backend directory.
"""
import asyncio
import logging
import uuid
from typing import Optional

from fastapi import APIRouter, FastAPI, Header, HTTPException, Request

from newsdesk.bot import BOT_COMMANDS
from newsdesk.config import Settings, load_settings
from newsdesk.services import Services, build_services

logger = logging.getLogger(__name__)


def configure_logging(level: str) -> None:
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s [%(levelname)s] %(name)s - %(message)s",
    )


def create_app(
    settings: Optional[Settings] = None,
    services: Optional[Services] = None,
    start_background: bool = True,
) -> FastAPI:
    settings = settings or (services.settings if services else load_settings())
    configure_logging(settings.log_level)
    services = services or build_services(settings)

    app = FastAPI(title="Newsdesk API")
    app.state.services = services
    api_router = APIRouter(prefix="/api")
    background = set()

    def _spawn(coro) -> None:
        task = asyncio.create_task(coro)
        background.add(task)
        task.add_done_callback(background.discard)

    # -----------------------------------------------------------------------
    # Lifecycle
    # -----------------------------------------------------------------------
    @app.on_event("startup")
    async def startup():
        services.updates.start()
        if not start_background:
            return

        if settings.backend_url:
            webhook_url = f"{settings.backend_url}/api/telegram/webhook"
            await services.api.setup_webhook(webhook_url, settings.webhook_secret)
            await services.api.set_my_commands(BOT_COMMANDS)
        else:
            logger.warning("BACKEND_URL not set, Telegram webhook not registered")
            await services.api.delete_webhook()

        async def initial_then_schedule():
            await services.scraper.run_scraper()
            await services.scraper.scrape_forever()

        _spawn(initial_then_schedule())

        if services.listener is not None:
            async def start_listener():
                try:
                    await services.listener.start()
                except Exception as e:
                    logger.error(f"Telegram listener failed to start: {e}", exc_info=True)

            _spawn(start_listener())
        else:
            logger.info("TELEGRAM_API_ID/API_HASH/PHONE_NUMBER not set, listener not started")

    @app.on_event("shutdown")
    async def shutdown():
        for task in list(background):
            task.cancel()
        await services.updates.stop()
        if services.listener is not None:
            await services.listener.stop()
        await services.api.aclose()

    # -----------------------------------------------------------------------
    # Telegram webhook
    # -----------------------------------------------------------------------
    @api_router.post("/telegram/webhook")
    async def telegram_webhook(
        request: Request,
        x_telegram_bot_api_secret_token: str = Header(default=""),
    ):
        """Queue the update and return at once; updates are handled in order."""
        if settings.webhook_secret and x_telegram_bot_api_secret_token != settings.webhook_secret:
            raise HTTPException(status_code=401, detail="Unauthorized")
        try:
            update = await request.json()
        except ValueError:
            return {"ok": True}
        if isinstance(update, dict):
            services.updates.submit(update)
        return {"ok": True}

    # -----------------------------------------------------------------------
    # Scraper trigger & status
    # -----------------------------------------------------------------------
    @api_router.post("/scraper/trigger")
    async def trigger_scraper(authorization: str = Header(default=None)):
        """Start a scrape cycle (called by a cron job or manually)."""
        if settings.agent_secret_key and authorization != f"Bearer {settings.agent_secret_key}":
            raise HTTPException(status_code=401, detail="Unauthorized")
        if services.scraper.running:
            return {"status": "running"}
        run_id = str(uuid.uuid4())
        _spawn(services.scraper.run_scraper(run_id))
        return {"status": "triggered", "run_id": run_id}

    @api_router.get("/status")
    async def get_status():
        last_run = services.scraper.last_run
        return {
            "contexts": len(services.contexts),
            "seen_fingerprints": len(services.dedup),
            "pending_prompts": len(services.conversations),
            "queued_updates": len(services.updates),
            "scraper_running": services.scraper.running,
            "last_run": {
                "run_id": last_run["run_id"],
                "stats": last_run.get("stats", {}),
                "errors": last_run.get("errors", []),
            } if last_run else None,
        }

    @api_router.get("/")
    async def root():
        return {
            "service": "Newsdesk Review Bot",
            "status": "running",
            "endpoints": [
                "POST /api/telegram/webhook",
                "POST /api/scraper/trigger",
                "GET /api/status",
            ],
        }

    app.include_router(api_router)
    return app
