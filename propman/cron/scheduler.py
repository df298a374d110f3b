import asyncio
import logging
from datetime import date, datetime, timedelta
from typing import Awaitable, Callable, Dict, List, Optional, Sequence, Set, Tuple
from zoneinfo import ZoneInfo

import anyio
import httpx
from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from ..core.settings import Settings
from ..models.reminder import (
  DispatchRecord,
  DispatchStats,
  DueReminder,
  PassSummary,
  ReminderKind,
  ReminderSendResult,
  SchedulerStatus,
  UpcomingReminder,
  UpcomingResponse,
)
from ..models.tenant import Property, Tenant, TenantStatus
from ..services.dispatch_log import DispatchLog
from ..services.eligibility_service import evaluate, last_due_date, match_due_date, next_due_date
from ..services.message_service import format_reminder, reminder_context, render_template
from ..services.sms_gateway import SMSGateway
from ..services.tenant_service import fetch_tenants_and_properties

logger = logging.getLogger(__name__)

SnapshotLoader = Callable[[], Awaitable[Tuple[List[Tenant], Dict[str, Property]]]]

JOB_ID = "rent-reminders"
OUTSIDE_BUSINESS_HOURS = "outside_business_hours"
NO_TENANTS = "no_tenants"
DATA_STORE_ERROR = "data_store_error"


class ReminderScheduler:
  """Recurring rent-reminder pass.

  Lifecycle: construct, `start()`, `stop()`, then `await aclose()`. The first
  pass runs as soon as the scheduler starts and then every
  `poll_interval_ms`. Passes never overlap: the timer and manual triggers
  queue on the same lock, and eligibility is always evaluated against the
  log as left by the previous pass.
  """

  def __init__(
    self,
    settings: Settings,
    gateway: SMSGateway,
    dispatch_log: DispatchLog,
    load_snapshot: SnapshotLoader,
    clock: Optional[Callable[[], datetime]] = None,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
  ):
    self.settings = settings
    self.gateway = gateway
    self.dispatch_log = dispatch_log
    self.load_snapshot = load_snapshot
    self.tz = ZoneInfo(settings.reminder_tz)
    self.clock = clock or (lambda: datetime.now(self.tz))
    self.sleep = sleep
    self.last_summary: Optional[PassSummary] = None
    self._scheduler: Optional[AsyncIOScheduler] = None
    self._lock = asyncio.Lock()
    self._tasks: Set[asyncio.Task] = set()

  @property
  def running(self) -> bool:
    return self._scheduler is not None

  def status(self) -> SchedulerStatus:
    return SchedulerStatus(
      running=self.running,
      pollIntervalMs=self.settings.poll_interval_ms,
      businessHourStart=self.settings.business_hour_start,
      businessHourEnd=self.settings.business_hour_end,
      timezone=self.settings.reminder_tz,
    )

  def start(self) -> bool:
    if self.running:
      return False
    scheduler = AsyncIOScheduler(timezone=self.tz)
    scheduler.add_job(
      self._spawn_pass,
      IntervalTrigger(seconds=self.settings.poll_interval_ms / 1000, timezone=self.tz),
      id=JOB_ID,
      next_run_time=datetime.now(self.tz),
      coalesce=True,
      max_instances=1,
      misfire_grace_time=None,
    )
    scheduler.start()
    self._scheduler = scheduler
    logger.info("[Reminders] Scheduler started, interval %d ms", self.settings.poll_interval_ms)
    return True

  def stop(self) -> bool:
    if not self.running:
      return False
    # Passes run as their own tasks, shutting the timer down leaves them alone.
    self._scheduler.shutdown(wait=False)
    self._scheduler = None
    logger.info("[Reminders] Scheduler stopped")
    return True

  async def aclose(self) -> None:
    self.stop()
    if self._tasks:
      await asyncio.gather(*self._tasks, return_exceptions=True)

  async def _spawn_pass(self) -> None:
    task = asyncio.create_task(self.run_pass())
    self._tasks.add(task)
    task.add_done_callback(self._tasks.discard)

  async def trigger_manual_check(self) -> PassSummary:
    logger.info("[Reminders] Manual reminder check triggered")
    return await self.run_pass()

  def within_business_hours(self, now: datetime) -> bool:
    return self.settings.business_hour_start <= now.hour <= self.settings.business_hour_end

  async def run_pass(self) -> PassSummary:
    async with self._lock:
      try:
        summary = await self._check_and_send()
      except Exception as exc:
        logger.exception("[Reminders] Reminder pass failed")
        summary = PassSummary(ranAt=self.clock(), error=str(exc))
    self.last_summary = summary
    return summary

  async def _check_and_send(self) -> PassSummary:
    now = self.clock()
    if not self.within_business_hours(now):
      logger.info("[Reminders] Outside business hours, skipping reminder pass")
      return PassSummary(ranAt=now, skipped=OUTSIDE_BUSINESS_HOURS)
    try:
      tenants, properties = await self.load_snapshot()
    except Exception as exc:
      logger.error("[Reminders] Could not load tenants: %s", exc)
      return PassSummary(ranAt=now, skipped=DATA_STORE_ERROR, error=str(exc))
    if not tenants:
      logger.info("[Reminders] No tenants found, skipping reminder pass")
      return PassSummary(ranAt=now, skipped=NO_TENANTS)

    due = evaluate(
      tenants,
      now.date(),
      self.dispatch_log,
      self.settings.reminder_days_before,
      self.settings.reminder_days_after,
    )
    summary = PassSummary(ranAt=now, checked=len(tenants), eligible=len(due))
    if due:
      logger.info("[Reminders] %d tenants need a reminder", len(due))
    delay = self.settings.inter_message_delay_ms / 1000
    for index, reminder in enumerate(due):
      if index and delay:
        await self.sleep(delay)
      record = await self._send_reminder(reminder, properties)
      if record.success:
        summary.sent += 1
      else:
        summary.failed += 1
    logger.info("[Reminders] Pass done: %d sent, %d failed", summary.sent, summary.failed)
    return summary

  async def _send_reminder(
    self,
    reminder: DueReminder,
    properties: Dict[str, Property],
    template: Optional[str] = None,
  ) -> DispatchRecord:
    tenant = reminder.tenant
    try:
      prop = properties.get(tenant.propertyId or "")
      property_name = prop.name if prop else None
      today = self.clock().date()
      if template:
        message = render_template(template, reminder_context(reminder, property_name, self.settings, today))
      else:
        message = format_reminder(reminder, property_name, self.settings, today)
      logger.info("[Reminders] Sending %s reminder to %s", reminder.kind.value, tenant.name)
      result = await self.gateway.send(tenant.phone, message)
      record = DispatchRecord(
        tenantId=tenant.id,
        tenantName=tenant.name,
        phone=result.phone,
        reminderType=reminder.kind,
        sentAt=self.clock(),
        success=result.success,
        cost=result.cost,
        messageId=result.messageId,
        error=result.error,
      )
    except Exception as exc:
      logger.exception("[Reminders] Error sending reminder to %s", tenant.name)
      record = DispatchRecord(
        tenantId=tenant.id,
        tenantName=tenant.name,
        phone=tenant.phone,
        reminderType=reminder.kind,
        sentAt=self.clock(),
        success=False,
        error=str(exc),
      )
    if not record.success:
      logger.warning("[Reminders] Failed %s reminder to %s: %s", reminder.kind.value, tenant.name, record.error)
    await self._record(record)
    return record

  async def _record(self, record: DispatchRecord) -> None:
    # SQLite commits block, keep them off the event loop.
    try:
      await anyio.to_thread.run_sync(self.dispatch_log.append, record)
    except Exception:
      logger.exception("[Reminders] Could not log %s reminder for %s", record.reminderType.value, record.tenantId)

  def _targeted_reminder(self, tenant: Tenant, today: date, kind: Optional[ReminderKind]) -> DueReminder:
    match = match_due_date(today, tenant.dueDay, self.settings.reminder_days_before, self.settings.reminder_days_after)
    if kind is None:
      kind = match[0] if match else ReminderKind.due_soon
    kind = ReminderKind(kind)
    if match and match[0] is kind:
      return DueReminder(tenant=tenant, kind=kind, daysOverdue=match[1], dueDate=match[2])
    if kind is ReminderKind.overdue:
      due = last_due_date(today, tenant.dueDay)
      return DueReminder(tenant=tenant, kind=kind, daysOverdue=max(1, (today - due).days), dueDate=due)
    if kind is ReminderKind.due_soon:
      due = next_due_date(today + timedelta(days=1), tenant.dueDay)
    else:
      due = next_due_date(today, tenant.dueDay)
    return DueReminder(tenant=tenant, kind=kind, dueDate=due)

  async def send_to_tenants(
    self,
    tenant_ids: Sequence[str],
    kind: Optional[ReminderKind] = None,
    template: Optional[str] = None,
  ) -> ReminderSendResult:
    """Send a reminder to the chosen tenants now, outside the timer.

    Without `kind` each tenant gets the reminder its due date calls for today,
    or `due_soon` when none is due. `template` replaces the standard wording.
    Inactive tenants and tenants already reminded today are skipped.
    """
    async with self._lock:
      today = self.clock().date()
      tenants, properties = await self.load_snapshot()
      by_id = {tenant.id: tenant for tenant in tenants}
      result = ReminderSendResult()
      targets = []
      for tenant_id in dict.fromkeys(tenant_ids):
        tenant = by_id.get(tenant_id)
        if tenant is None:
          result.missing.append(tenant_id)
        elif tenant.status == TenantStatus.inactive or self.dispatch_log.was_sent_today(tenant.id, today):
          result.skipped.append(tenant_id)
        else:
          targets.append(self._targeted_reminder(tenant, today, kind))

      logger.info("[Reminders] Sending reminders to %d selected tenants", len(targets))
      delay = self.settings.inter_message_delay_ms / 1000
      for index, reminder in enumerate(targets):
        if index and delay:
          await self.sleep(delay)
        record = await self._send_reminder(reminder, properties, template)
        result.results.append(record)
        if record.success:
          result.sent += 1
          result.totalCost += record.cost
        else:
          result.failed += 1
      result.total = len(result.results)
    return result

  async def preview(self) -> UpcomingResponse:
    """Reminders a pass would send today, without sending anything."""
    today = self.clock().date()
    tenants, properties = await self.load_snapshot()
    due = evaluate(
      tenants, today, self.dispatch_log, self.settings.reminder_days_before, self.settings.reminder_days_after
    )
    reminders = []
    for reminder in due:
      prop = properties.get(reminder.tenant.propertyId or "")
      reminders.append(
        UpcomingReminder(
          tenantId=reminder.tenant.id,
          tenantName=reminder.tenant.name,
          phone=self.gateway.normalize(reminder.tenant.phone),
          propertyName=prop.name if prop else "",
          kind=reminder.kind,
          daysOverdue=reminder.daysOverdue,
          amount=reminder.tenant.rentAmount,
          message=format_reminder(reminder, prop.name if prop else None, self.settings, today),
        )
      )
    return UpcomingResponse(date=today.isoformat(), totalRecipients=len(reminders), reminders=reminders)

  def get_stats(self) -> DispatchStats:
    return self.dispatch_log.stats(self.clock().date())

  def get_recent_logs(
    self, limit: int = 50, kind: Optional[ReminderKind] = None, success: Optional[bool] = None
  ) -> List[DispatchRecord]:
    return self.dispatch_log.recent(limit, kind=kind, success=success)

  def clear_logs(self) -> int:
    return self.dispatch_log.clear()


def create_scheduler(
  settings: Settings,
  http_client: httpx.AsyncClient,
  dispatch_log: DispatchLog,
  gateway: Optional[SMSGateway] = None,
) -> ReminderScheduler:
  gateway = gateway or SMSGateway(settings, http_client)

  async def load_snapshot():
    return await fetch_tenants_and_properties(http_client, settings)

  return ReminderScheduler(settings, gateway, dispatch_log, load_snapshot)
