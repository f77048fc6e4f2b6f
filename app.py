"""
app.py — FastAPI application.

Exposes the cron job API, attaches/detaches the Telegram bot that
scheduled messages are delivered through, and runs the cron manager
for the lifetime of the process.
"""

import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Callable, Optional

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from config.settings import settings
from core.cron_manager import CronManager, cron_manager as default_cron_manager
from core.errors import JobNotFoundError, JobValidationError
from interfaces.telegram import TelegramClient

logger = logging.getLogger(__name__)

ClientFactory = Callable[[str], TelegramClient]


async def _body(request: Request) -> dict:
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def create_app(
    manager: Optional[CronManager] = None,
    client_factory: ClientFactory = TelegramClient,
    bot_token: Optional[str] = None,
) -> FastAPI:
    manager = manager if manager is not None else default_cron_manager
    gateway = manager.gateway
    bot_lock = asyncio.Lock()
    if bot_token is None:
        bot_token = settings.telegram_bot_token.strip() if settings.has_bot_token else ""

    # ==========================================================
    # 1. Bot attach / detach
    # ==========================================================

    async def attach_bot(token: str, chat_id: Optional[str] = None) -> TelegramClient:
        """Verify a token, swap it into the gateway and close the old client."""
        client = client_factory(token)
        try:
            me = await client.get_me()
        except Exception:
            await client.close()
            raise

        previous = gateway.attach(client)
        if previous is not None and previous is not client:
            try:
                await previous.close()
            except Exception as e:
                logger.error(f"Error stopping previous bot: {e}")

        logger.info(f"✅ Telegram bot @{me.get('username')} attached")

        if chat_id:
            try:
                await client.send_message(str(chat_id), "Agent connected successfully! I am now online.")
            except Exception as e:
                logger.error(f"Failed to send welcome message to chat ID {chat_id}: {e}")
        return client

    async def detach_bot() -> bool:
        previous = gateway.detach()
        if previous is None:
            return False
        await previous.close()
        return True

    # ==========================================================
    # 2. Lifespan (startup / shutdown)
    # ==========================================================

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        logger.info("🚀 Starting scheduler service...")

        if bot_token:
            try:
                async with bot_lock:
                    await attach_bot(bot_token, settings.telegram_chat_id)
            except Exception as e:
                logger.error(f"❌ Failed to attach Telegram bot at startup: {e}")
        else:
            logger.warning("⚠️ No TELEGRAM_BOT_TOKEN configured; start the bot via POST /api/bot/start")

        await manager.start()
        logger.info("✅ Cron scheduler started")

        yield

        logger.info("🔴 Shutting down...")
        await manager.stop()
        await detach_bot()

    app = FastAPI(
        title="Scheduled Message Agent",
        description="Recurring Telegram messages driven by cron schedules",
        version="0.1.0",
        lifespan=lifespan,
    )
    app.state.cron_manager = manager

    @app.exception_handler(JobValidationError)
    async def _validation_error(request: Request, exc: JobValidationError):
        return JSONResponse({"error": exc.message, "fields": exc.fields}, status_code=400)

    @app.exception_handler(JobNotFoundError)
    async def _not_found(request: Request, exc: JobNotFoundError):
        return JSONResponse({"error": "Job not found"}, status_code=404)

    # ==========================================================
    # 3. Health
    # ==========================================================

    @app.get("/health")
    async def health():
        return {
            "status": "healthy",
            "transport_ready": gateway.is_attached,
            "jobs": len(manager.registry),
            "queued_fires": sum(manager.lanes.pending(lane) for lane in list(manager.lanes.lanes)),
        }

    # ==========================================================
    # 4. Cron jobs
    # ==========================================================

    @app.get("/api/cron")
    async def list_jobs():
        return {"jobs": [job.to_api() for job in manager.list_jobs()]}

    @app.post("/api/cron")
    async def create_job(request: Request):
        job = manager.create_job(await _body(request))
        return {"success": True, "job": job.to_api()}

    @app.get("/api/cron/{job_id}")
    async def get_job(job_id: str):
        return {"job": manager.get_job(job_id).to_api()}

    @app.delete("/api/cron/{job_id}")
    async def delete_job(job_id: str):
        manager.delete_job(job_id)
        return {"success": True}

    @app.post("/api/cron/{job_id}/toggle")
    async def toggle_job(job_id: str):
        job = manager.toggle_job(job_id)
        return {"success": True, "job": job.to_api()}

    @app.post("/api/cron/{job_id}/run")
    async def run_job(job_id: str):
        job = await manager.run_job(job_id)
        return {"success": True, "job": job.to_api()}

    # ==========================================================
    # 5. Bot management
    # ==========================================================

    @app.get("/api/bot/status")
    async def bot_status():
        client = gateway.client
        if client is None:
            return {"status": "stopped"}
        started = gateway.attached_at
        return {
            "status": "running",
            "username": getattr(client, "username", None),
            "startTime": started.isoformat() if started else None,
            "uptime": (datetime.now(timezone.utc) - started).total_seconds() if started else 0,
        }

    @app.post("/api/bot/start")
    async def bot_start(request: Request):
        body = await _body(request)
        token = body.get("token")
        if not token:
            return JSONResponse({"error": "Token is required"}, status_code=400)

        async with bot_lock:
            current = gateway.client
            if current is not None and getattr(current, "token", None) == token:
                return {"status": "running", "message": "Bot is already running"}
            try:
                await attach_bot(token, body.get("chatId"))
            except Exception as e:
                logger.error(f"Error starting bot: {e}")
                return JSONResponse({"error": "Failed to start bot", "details": str(e)}, status_code=500)

        return {"status": "started", "message": "Bot started successfully"}

    @app.post("/api/bot/stop")
    async def bot_stop():
        async with bot_lock:
            stopped = await detach_bot()
        if stopped:
            return {"status": "stopped", "message": "Bot stopped successfully"}
        return {"status": "stopped", "message": "No bot was running"}

    @app.post("/api/bot/validate-token")
    async def validate_token(request: Request):
        body = await _body(request)
        token = body.get("token")
        if not token:
            return JSONResponse({"error": "Token is required"}, status_code=400)
        client = client_factory(token)
        try:
            me = await client.get_me()
        except Exception as e:
            logger.error(f"Token validation failed: {e}")
            return JSONResponse({"valid": False, "error": "Invalid token or network error"}, status_code=400)
        finally:
            await client.close()
        return {"valid": True, "username": me.get("username"), "id": me.get("id")}

    @app.post("/api/bot/validate-chatid")
    async def validate_chat_id(request: Request):
        body = await _body(request)
        token, chat_id = body.get("token"), body.get("chatId")
        if not token or not chat_id:
            return JSONResponse({"error": "Token and Chat ID are required"}, status_code=400)
        client = client_factory(token)
        try:
            chat = await client.get_chat(str(chat_id))
        except Exception as e:
            logger.error(f"Chat ID validation failed: {e}")
            return JSONResponse(
                {"valid": False, "error": "Invalid Chat ID or bot hasn't started conversation with this user."},
                status_code=400,
            )
        finally:
            await client.close()
        return {"valid": True, "type": chat.get("type"), "title": chat.get("title")}

    return app


app = create_app()


# ==========================================================
# 6. Entrypoint
# ==========================================================

if __name__ == "__main__":
    import uvicorn
    uvicorn.run("app:app", host=settings.host, port=settings.port, reload=False)
