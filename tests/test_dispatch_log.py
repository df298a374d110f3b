from datetime import date

import pytest

from propman.models.reminder import DispatchRecord, ReminderKind
from propman.services.dispatch_log import DispatchLog

from conftest import local


def record(tenant_id="t1", success=True, cost=1.0, when=None, kind=ReminderKind.due_soon, **extra):
  return DispatchRecord(
    tenantId=tenant_id,
    reminderType=kind,
    sentAt=when or local(2024, 1, 12, 9),
    success=success,
    cost=cost,
    **extra,
  )


def test_empty_log_stats():
  stats = DispatchLog().stats(date(2024, 1, 12))
  assert stats.totalSent == 0
  assert stats.totalFailed == 0
  assert stats.totalCost == 0
  assert stats.sentToday == 0
  assert stats.successRate == 0


def test_stats_count_only_successful_cost():
  log = DispatchLog()
  log.append(record("t1", cost=1.0))
  log.append(record("t2", cost=2.0))
  log.append(record("t3", success=False, cost=3.0, error="Network error"))
  log.append(record("t4", cost=1.0, when=local(2024, 1, 11, 9)))

  stats = log.stats(date(2024, 1, 12))
  assert stats.totalSent == 3
  assert stats.totalFailed == 1
  assert stats.totalCost == pytest.approx(4.0)
  assert stats.sentToday == 2
  assert stats.successRate == pytest.approx(3 / 4)


def test_stats_since_filters_older_records():
  log = DispatchLog()
  log.append(record("t1", when=local(2024, 1, 10, 9)))
  log.append(record("t2", success=False, when=local(2024, 1, 12, 9)))
  stats = log.stats(date(2024, 1, 12), since=local(2024, 1, 11, 0))
  assert stats.totalSent == 0
  assert stats.totalFailed == 1
  assert stats.successRate == 0


def test_was_sent_today_matches_tenant_day_and_success():
  log = DispatchLog()
  log.append(record("t1", when=local(2024, 1, 12, 9)))
  log.append(record("t2", success=False, when=local(2024, 1, 12, 9)))
  assert log.was_sent_today("t1", date(2024, 1, 12))
  assert not log.was_sent_today("t1", date(2024, 1, 13))
  assert not log.was_sent_today("t2", date(2024, 1, 12))
  assert not log.was_sent_today("t3", date(2024, 1, 12))


def test_recent_is_newest_first_and_limited():
  log = DispatchLog()
  log.append(record("t1", when=local(2024, 1, 12, 9)))
  log.append(record("t2", when=local(2024, 1, 12, 11)))
  log.append(record("t3", when=local(2024, 1, 12, 10), messageId="ATXid_3"))

  recent = log.recent(2)
  assert [r.tenantId for r in recent] == ["t2", "t3"]
  assert log.recent(10)[1].messageId == "ATXid_3"
  assert log.recent(10)[1].sentAt == local(2024, 1, 12, 10)


def test_log_survives_reopen(tmp_path):
  path = str(tmp_path / "logs" / "dispatch.sqlite3")
  log = DispatchLog(path)
  log.append(record("t1"))
  log.close()

  reopened = DispatchLog(path)
  assert reopened.was_sent_today("t1", date(2024, 1, 12))
  assert reopened.recent(5)[0].reminderType is ReminderKind.due_soon
  reopened.close()


def test_clear_removes_everything():
  log = DispatchLog()
  log.append(record("t1"))
  log.append(record("t2"))
  assert log.clear() == 2
  assert log.recent() == []


def test_records_are_immutable():
  item = record()
  with pytest.raises(Exception):
    item.success = False


def test_recent_filters_by_kind_and_outcome():
  log = DispatchLog()
  log.append(record("t1", when=local(2024, 1, 12, 9)))
  log.append(record("t2", kind=ReminderKind.overdue, when=local(2024, 1, 12, 10)))
  log.append(record("t3", kind=ReminderKind.overdue, success=False, error="Network error", when=local(2024, 1, 12, 11)))

  assert [r.tenantId for r in log.recent(kind=ReminderKind.overdue)] == ["t3", "t2"]
  assert [r.tenantId for r in log.recent(success=False)] == ["t3"]
  assert [r.tenantId for r in log.recent(kind="overdue", success=True)] == ["t2"]
  assert [r.tenantId for r in log.recent(1, kind=ReminderKind.overdue)] == ["t3"]
  assert log.recent(kind=ReminderKind.due_today) == []
