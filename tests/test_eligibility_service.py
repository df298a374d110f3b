from datetime import date

import pytest

from propman.models.reminder import DispatchRecord, ReminderKind
from propman.services.dispatch_log import DispatchLog
from propman.services.eligibility_service import (
  classify,
  due_date_for,
  evaluate,
  last_due_date,
  next_due_date,
  shift_month,
)

from conftest import local, make_tenant


def kinds(reminders):
  return [(r.tenant.id, r.kind, r.daysOverdue) for r in reminders]


@pytest.mark.parametrize(
  "today,expected",
  [
    (date(2024, 1, 12), [("t1", ReminderKind.due_soon, None)]),
    (date(2024, 1, 15), [("t1", ReminderKind.due_today, None)]),
    (date(2024, 1, 18), [("t1", ReminderKind.overdue, 3)]),
    (date(2024, 1, 13), []),
    (date(2024, 1, 17), []),
    (date(2024, 1, 14), []),
  ],
)
def test_fires_on_exact_days_only(today, expected):
  assert kinds(evaluate([make_tenant(dueDay=15)], today, DispatchLog())) == expected


def test_inactive_tenants_are_skipped_but_other_statuses_are_not():
  tenants = [
    make_tenant("inactive", status="inactive"),
    make_tenant("suspended", status="suspended"),
    make_tenant("defaulter", status="defaulter"),
  ]
  result = evaluate(tenants, date(2024, 1, 15), DispatchLog())
  assert [r.tenant.id for r in result] == ["suspended", "defaulter"]


def test_tenant_already_reminded_today_is_skipped():
  log = DispatchLog()
  log.append(
    DispatchRecord(tenantId="t1", reminderType=ReminderKind.due_soon, sentAt=local(2024, 1, 12, 9), success=True, cost=1)
  )
  assert evaluate([make_tenant()], date(2024, 1, 12), log) == []


def test_failed_attempt_does_not_block_a_retry():
  log = DispatchLog()
  log.append(
    DispatchRecord(tenantId="t1", reminderType=ReminderKind.due_soon, sentAt=local(2024, 1, 12, 9), success=False)
  )
  assert kinds(evaluate([make_tenant()], date(2024, 1, 12), log)) == [("t1", ReminderKind.due_soon, None)]


def test_custom_offsets():
  tenant = make_tenant(dueDay=20)
  assert kinds(evaluate([tenant], date(2024, 3, 15), None, days_before=5)) == [("t1", ReminderKind.due_soon, None)]
  assert kinds(evaluate([tenant], date(2024, 3, 27), None, days_after=7)) == [("t1", ReminderKind.overdue, 7)]


def test_due_day_is_clamped_to_month_end():
  assert due_date_for(2024, 2, 31) == date(2024, 2, 29)
  assert due_date_for(2023, 2, 30) == date(2023, 2, 28)
  assert due_date_for(2024, 4, 31) == date(2024, 4, 30)
  assert kinds(evaluate([make_tenant(dueDay=31)], date(2024, 4, 30), None)) == [("t1", ReminderKind.due_today, None)]


def test_overdue_crosses_into_next_month():
  # Due on the 30th of January, three days later is the 2nd of February.
  assert classify(date(2024, 2, 2), 30) == (ReminderKind.overdue, 3)


def test_due_soon_looks_into_next_month():
  assert classify(date(2024, 1, 29), 1) == (ReminderKind.due_soon, None)


def test_shift_month_wraps_years():
  assert shift_month(2024, 1, -1) == (2023, 12)
  assert shift_month(2024, 12, 1) == (2025, 1)


def test_this_months_due_date_decides_before_neighbouring_months():
  # The 1st of March is 14 days before the 15th and also 14 days after the 15th of February.
  assert classify(date(2023, 3, 1), 15, days_before=14, days_after=14) == (ReminderKind.due_soon, None)
  result = evaluate([make_tenant(dueDay=15)], date(2023, 3, 1), None, days_before=14, days_after=14)
  assert kinds(result) == [("t1", ReminderKind.due_soon, None)]
  assert result[0].dueDate == date(2023, 3, 15)


def test_neighbouring_month_is_used_when_this_month_matches_nothing():
  result = evaluate([make_tenant(dueDay=30)], date(2024, 2, 2), None)
  assert kinds(result) == [("t1", ReminderKind.overdue, 3)]
  assert result[0].dueDate == date(2024, 1, 30)


def test_reminder_carries_the_clamped_due_date():
  result = evaluate([make_tenant(dueDay=31)], date(2024, 2, 29), None)
  assert result[0].dueDate == date(2024, 2, 29)


def test_last_and_next_due_dates():
  assert last_due_date(date(2024, 3, 10), 15) == date(2024, 2, 15)
  assert last_due_date(date(2024, 3, 15), 15) == date(2024, 3, 15)
  assert next_due_date(date(2024, 3, 16), 31) == date(2024, 4, 30)
  assert next_due_date(date(2024, 3, 15), 15) == date(2024, 3, 15)
