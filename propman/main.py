import logging
from typing import Optional

import httpx
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from .api import reminders, sms
from .core.settings import Settings, get_settings
from .cron.scheduler import create_scheduler
from .services.dispatch_log import DispatchLog
from .services.sms_gateway import SMSGateway

logger = logging.getLogger(__name__)


def configure_logging(settings: Settings) -> None:
  logging.basicConfig(
    level=settings.log_level.upper(),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
  )


def create_app(settings: Optional[Settings] = None) -> FastAPI:
  settings = settings or get_settings()
  configure_logging(settings)
  app = FastAPI(title="PropMan Reminders API", version="1.0.0")

  app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.allowed_origins or ["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
  )

  http_client = httpx.AsyncClient(timeout=15)
  dispatch_log = DispatchLog(settings.dispatch_log_path)
  gateway = SMSGateway(settings, http_client)
  app.state.settings = settings
  app.state.http_client = http_client
  app.state.dispatch_log = dispatch_log
  app.state.gateway = gateway
  app.state.scheduler = create_scheduler(settings, http_client, dispatch_log, gateway)

  @app.on_event("startup")
  async def startup_event():
    if settings.reminder_active:
      app.state.scheduler.start()
    else:
      logger.info("[Reminders] Automatic reminders disabled")

  @app.on_event("shutdown")
  async def shutdown_event():
    await app.state.scheduler.aclose()
    app.state.dispatch_log.close()
    await http_client.aclose()

  app.include_router(reminders.router)
  app.include_router(sms.router)

  @app.get("/api/health")
  async def health():
    return {"status": "ok", "scheduler": app.state.scheduler.running}

  return app


app = create_app()


if __name__ == "__main__":  # pragma: no cover
  import uvicorn

  settings = get_settings()
  uvicorn.run("propman.main:app", host="0.0.0.0", port=settings.port, reload=True)
