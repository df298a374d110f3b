from typing import List, Optional

from fastapi import APIRouter, HTTPException, Request, status

from ..cron.scheduler import ReminderScheduler
from ..models.reminder import (
  DispatchRecord,
  DispatchStats,
  PassSummary,
  ReminderKind,
  ReminderSendRequest,
  ReminderSendResult,
  SchedulerStatus,
  UpcomingResponse,
)

router = APIRouter(prefix="/api/reminders", tags=["reminders"])


def get_scheduler(request: Request) -> ReminderScheduler:
  return request.app.state.scheduler


@router.get("/status", response_model=SchedulerStatus)
async def scheduler_status(request: Request):
  return get_scheduler(request).status()


@router.post("/start", response_model=SchedulerStatus)
async def start_scheduler(request: Request):
  scheduler = get_scheduler(request)
  scheduler.start()
  return scheduler.status()


@router.post("/stop", response_model=SchedulerStatus)
async def stop_scheduler(request: Request):
  scheduler = get_scheduler(request)
  scheduler.stop()
  return scheduler.status()


@router.post("/trigger", response_model=PassSummary)
async def trigger_check(request: Request):
  return await get_scheduler(request).trigger_manual_check()


@router.post("/send", response_model=ReminderSendResult)
async def send_reminders(payload: ReminderSendRequest, request: Request):
  scheduler = get_scheduler(request)
  if not scheduler.gateway.configured:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="SMS gateway not configured.")
  try:
    result = await scheduler.send_to_tenants(payload.tenantIds, payload.kind, payload.message)
  except HTTPException:
    raise
  except Exception as exc:
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Could not load tenants: {exc}") from exc
  if not result.results and not result.skipped:
    raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No matching tenants for this send.")
  return result


@router.get("/stats", response_model=DispatchStats)
async def reminder_stats(request: Request):
  return get_scheduler(request).get_stats()


@router.get("/logs", response_model=List[DispatchRecord])
async def reminder_logs(
  request: Request, limit: int = 50, kind: Optional[ReminderKind] = None, success: Optional[bool] = None
):
  return get_scheduler(request).get_recent_logs(max(1, min(500, limit)), kind=kind, success=success)


@router.delete("/logs")
async def clear_reminder_logs(request: Request):
  return {"deleted": get_scheduler(request).clear_logs()}


@router.get("/upcoming", response_model=UpcomingResponse)
async def upcoming_reminders(request: Request):
  try:
    return await get_scheduler(request).preview()
  except HTTPException:
    raise
  except Exception as exc:
    raise HTTPException(status_code=status.HTTP_502_BAD_GATEWAY, detail=f"Could not load tenants: {exc}") from exc
