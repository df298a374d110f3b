import calendar
import logging
from datetime import date
from typing import Iterable, List, Optional, Protocol, Tuple

from ..models.reminder import DueReminder, ReminderKind
from ..models.tenant import Tenant, TenantStatus

logger = logging.getLogger(__name__)


class SentTodayLookup(Protocol):
  def was_sent_today(self, tenant_id: str, day: date) -> bool:
    ...


def shift_month(year: int, month: int, delta: int) -> Tuple[int, int]:
  index = year * 12 + (month - 1) + delta
  return index // 12, index % 12 + 1


def due_date_for(year: int, month: int, due_day: int) -> date:
  """Due date of the given month; a due day past the month end falls on its last day."""
  last_day = calendar.monthrange(year, month)[1]
  return date(year, month, min(due_day, last_day))


def last_due_date(today: date, due_day: int) -> date:
  due = due_date_for(today.year, today.month, due_day)
  if due <= today:
    return due
  year, month = shift_month(today.year, today.month, -1)
  return due_date_for(year, month, due_day)


def next_due_date(today: date, due_day: int) -> date:
  due = due_date_for(today.year, today.month, due_day)
  if due >= today:
    return due
  year, month = shift_month(today.year, today.month, 1)
  return due_date_for(year, month, due_day)


def _match_cycle(
  today: date, due: date, days_before: int, days_after: int
) -> Optional[Tuple[ReminderKind, Optional[int]]]:
  if due >= today:
    days_until_due = (due - today).days
    if days_until_due == 0:
      return ReminderKind.due_today, None
    if days_until_due == days_before:
      return ReminderKind.due_soon, None
    return None
  if (today - due).days == days_after:
    return ReminderKind.overdue, days_after
  return None


def match_due_date(
  today: date, due_day: int, days_before: int = 3, days_after: int = 3
) -> Optional[Tuple[ReminderKind, Optional[int], date]]:
  """Kind of reminder due today and the due date it refers to.

  This month's due date decides first. The previous and next months are only
  consulted when it matches nothing, so that a due day close to a month
  boundary still gets its reminders.
  """
  for delta in (0, -1, 1):
    year, month = shift_month(today.year, today.month, delta)
    due = due_date_for(year, month, due_day)
    match = _match_cycle(today, due, days_before, days_after)
    if match is not None:
      return match[0], match[1], due
  return None


def classify(
  today: date, due_day: int, days_before: int = 3, days_after: int = 3
) -> Optional[Tuple[ReminderKind, Optional[int]]]:
  match = match_due_date(today, due_day, days_before, days_after)
  if match is None:
    return None
  return match[0], match[1]


def evaluate(
  tenants: Iterable[Tenant],
  today: date,
  dispatch_log: Optional[SentTodayLookup],
  days_before: int = 3,
  days_after: int = 3,
) -> List[DueReminder]:
  reminders: List[DueReminder] = []
  for tenant in tenants:
    if tenant.status == TenantStatus.inactive:
      continue
    if dispatch_log is not None and dispatch_log.was_sent_today(tenant.id, today):
      logger.debug("[Reminders] %s already reminded on %s", tenant.id, today.isoformat())
      continue
    match = match_due_date(today, tenant.dueDay, days_before, days_after)
    if match is None:
      continue
    kind, days_overdue, due = match
    reminders.append(DueReminder(tenant=tenant, kind=kind, daysOverdue=days_overdue, dueDate=due))
  return reminders
