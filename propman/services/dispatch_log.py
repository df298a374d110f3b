import sqlite3
import threading
from datetime import date, datetime
from pathlib import Path
from typing import List, Optional

from ..models.reminder import DispatchRecord, DispatchStats, ReminderKind

MEMORY = ":memory:"


class DispatchLog:
  """Append-only record of reminder send attempts, kept in SQLite.

  The connection is opened on first use and shared behind a lock, so the
  scheduler pass and the HTTP handlers can read and append concurrently.
  """

  def __init__(self, path: str = MEMORY):
    self.path = path
    self.conn: Optional[sqlite3.Connection] = None
    self._lock = threading.Lock()

  def _connection(self) -> sqlite3.Connection:
    if self.conn is None:
      if self.path != MEMORY:
        Path(self.path).parent.mkdir(parents=True, exist_ok=True)
      self.conn = sqlite3.connect(self.path, check_same_thread=False)
      self.conn.row_factory = sqlite3.Row
      self._init_schema()
    return self.conn

  def _init_schema(self) -> None:
    self.conn.execute(
      """
      CREATE TABLE IF NOT EXISTS dispatch_log (
        id TEXT PRIMARY KEY,
        tenant_id TEXT NOT NULL,
        tenant_name TEXT,
        phone TEXT,
        reminder_type TEXT NOT NULL,
        sent_at TEXT NOT NULL,
        sent_ts REAL NOT NULL,
        sent_day TEXT NOT NULL,
        success INTEGER NOT NULL,
        cost REAL NOT NULL DEFAULT 0,
        message_id TEXT,
        error TEXT
      )
      """
    )
    self.conn.execute(
      "CREATE INDEX IF NOT EXISTS idx_dispatch_tenant_day ON dispatch_log(tenant_id, sent_day, success)"
    )
    self.conn.execute("CREATE INDEX IF NOT EXISTS idx_dispatch_sent_ts ON dispatch_log(sent_ts)")
    self.conn.commit()

  def append(self, record: DispatchRecord) -> DispatchRecord:
    with self._lock:
      conn = self._connection()
      conn.execute(
        """
        INSERT INTO dispatch_log (
          id, tenant_id, tenant_name, phone, reminder_type, sent_at, sent_ts, sent_day,
          success, cost, message_id, error
        ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
        """,
        (
          record.id,
          record.tenantId,
          record.tenantName,
          record.phone,
          record.reminderType.value,
          record.sentAt.isoformat(),
          record.sentAt.timestamp(),
          record.sentAt.date().isoformat(),
          1 if record.success else 0,
          float(record.cost),
          record.messageId,
          record.error,
        ),
      )
      conn.commit()
    return record

  def was_sent_today(self, tenant_id: str, day: date) -> bool:
    with self._lock:
      row = self._connection().execute(
        "SELECT 1 FROM dispatch_log WHERE tenant_id=? AND sent_day=? AND success=1 LIMIT 1",
        (tenant_id, day.isoformat()),
      ).fetchone()
    return row is not None

  def stats(self, today: date, since: Optional[datetime] = None) -> DispatchStats:
    where = ""
    params: list = [today.isoformat()]
    if since is not None:
      where = " WHERE sent_ts >= ?"
      params.append(since.timestamp())
    sql = (
      "SELECT "
      "COALESCE(SUM(success), 0) AS sent, "
      "COALESCE(SUM(1 - success), 0) AS failed, "
      "COALESCE(SUM(CASE WHEN success=1 THEN cost ELSE 0 END), 0) AS cost, "
      "COALESCE(SUM(CASE WHEN success=1 AND sent_day=? THEN 1 ELSE 0 END), 0) AS sent_today "
      f"FROM dispatch_log{where}"
    )
    with self._lock:
      row = self._connection().execute(sql, params).fetchone()
    sent, failed = int(row["sent"]), int(row["failed"])
    total = sent + failed
    return DispatchStats(
      totalSent=sent,
      totalFailed=failed,
      totalCost=float(row["cost"]),
      sentToday=int(row["sent_today"]),
      successRate=sent / total if total else 0.0,
    )

  def recent(
    self, limit: int = 50, kind: Optional[ReminderKind] = None, success: Optional[bool] = None
  ) -> List[DispatchRecord]:
    clauses = []
    params: list = []
    if kind is not None:
      clauses.append("reminder_type=?")
      params.append(ReminderKind(kind).value)
    if success is not None:
      clauses.append("success=?")
      params.append(1 if success else 0)
    where = f" WHERE {' AND '.join(clauses)}" if clauses else ""
    params.append(max(0, int(limit)))
    with self._lock:
      rows = self._connection().execute(
        f"SELECT * FROM dispatch_log{where} ORDER BY sent_ts DESC, rowid DESC LIMIT ?", params
      ).fetchall()
    return [self._to_record(row) for row in rows]

  def clear(self) -> int:
    with self._lock:
      conn = self._connection()
      deleted = conn.execute("DELETE FROM dispatch_log").rowcount
      conn.commit()
    return deleted

  def close(self) -> None:
    with self._lock:
      if self.conn:
        self.conn.close()
        self.conn = None

  @staticmethod
  def _to_record(row: sqlite3.Row) -> DispatchRecord:
    return DispatchRecord(
      id=row["id"],
      tenantId=row["tenant_id"],
      tenantName=row["tenant_name"],
      phone=row["phone"],
      reminderType=row["reminder_type"],
      sentAt=datetime.fromisoformat(row["sent_at"]),
      success=bool(row["success"]),
      cost=row["cost"],
      messageId=row["message_id"],
      error=row["error"],
    )
