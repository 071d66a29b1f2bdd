"""
FastAPI Webhook Server for the STX WhatsApp Bot
Receives Twilio WhatsApp webhooks, hands each message to the dispatcher and
exposes a health check.
"""
import logging
import os
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
from twilio.request_validator import RequestValidator

from config import Config
from services.container import ServiceContainer, build_container
from utils.data_sanitizer import mask_phone

logger = logging.getLogger(__name__)

WHATSAPP_PREFIX = "whatsapp:"
REQUIRED_FIELDS = ("From", "Body", "MessageSid")


def configure_logging(level: Optional[str] = None) -> None:
    logging.basicConfig(
        level=getattr(logging, (level or Config.LOG_LEVEL), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )
    # Twilio's HTTP client logs every request body at INFO
    logging.getLogger("twilio.http_client").setLevel(logging.WARNING)


def strip_whatsapp_prefix(sender: str) -> str:
    sender = sender.strip()
    if sender.startswith(WHATSAPP_PREFIX):
        return sender[len(WHATSAPP_PREFIX):]
    return sender


def is_valid_twilio_signature(request_url: str, params: dict, signature: Optional[str]) -> bool:
    if not signature or not Config.TWILIO_AUTH_TOKEN:
        return False
    validator = RequestValidator(Config.TWILIO_AUTH_TOKEN)
    return validator.validate(request_url, params, signature)


def create_app(container: Optional[ServiceContainer] = None, start_scheduler: bool = True) -> FastAPI:
    """Build the app; tests pass a prebuilt container and skip the scheduler"""

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info(f"🔧 Worker {os.getpid()} starting...")
        Config.log_environment_config()

        services = container or build_container()
        app.state.container = services
        await services.database.create_tables()

        scheduler_started = False
        if start_scheduler and Config.LEDGER_SYNC_ENABLED:
            services.scheduler.start()
            scheduler_started = True
        else:
            logger.info("⏸️ Ledger sync scheduler disabled")

        logger.info(f"✅ Worker {os.getpid()} ready")
        yield

        logger.info(f"🔄 Worker {os.getpid()} shutting down...")
        if scheduler_started:
            services.scheduler.stop()
        if container is None:
            await services.database.dispose()

    app = FastAPI(
        title="STX WhatsApp Bot Webhook Server",
        description="Twilio WhatsApp webhook for STX payments and escrows",
        lifespan=lifespan,
    )

    @app.get("/")
    async def root():
        return {"message": "STX WhatsApp Bot is running"}

    @app.get("/health")
    async def health_check():
        return {
            "status": "healthy",
            "service": "stx-whatsapp-bot",
            "network": Config.STACKS_NETWORK,
            "features": {
                "registration": True,
                "payments": True,
                "escrow": True,
                "contacts": True,
                "whatsapp": Config.TWILIO_ENABLED,
                "signer": bool(Config.STACKS_SIGNER_URL),
                "ledger_sync": Config.LEDGER_SYNC_ENABLED,
            },
        }

    @app.post("/webhook/whatsapp")
    async def whatsapp_webhook(request: Request):
        form = await request.form()
        params = {key: value for key, value in form.items()}

        missing = [field for field in REQUIRED_FIELDS if field not in params]
        if missing:
            logger.warning(f"⚠️ WhatsApp webhook missing fields: {', '.join(missing)}")
            return JSONResponse(
                content={"ok": False, "error": f"Missing fields: {', '.join(missing)}"},
                status_code=400,
            )

        if Config.TWILIO_VALIDATE_SIGNATURE:
            request_url = (
                f"{Config.WEBHOOK_PUBLIC_URL}{request.url.path}" if Config.WEBHOOK_PUBLIC_URL else str(request.url)
            )
            signature = request.headers.get("X-Twilio-Signature")
            if not is_valid_twilio_signature(request_url, params, signature):
                logger.error("❌ Unauthorized WhatsApp webhook - invalid Twilio signature")
                return JSONResponse(content={"ok": False, "error": "Invalid signature"}, status_code=403)

        user_id = strip_whatsapp_prefix(params["From"])
        logger.info(f"📱 WhatsApp message {params['MessageSid']} from {mask_phone(user_id)}")

        dispatcher = request.app.state.container.dispatcher
        await dispatcher.on_inbound_message(user_id, params["Body"])
        return JSONResponse(content={"ok": True, "message_sid": params["MessageSid"]}, status_code=200)

    return app


configure_logging()
app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("webhook_server:app", host="0.0.0.0", port=int(os.getenv("PORT", "8000")))
