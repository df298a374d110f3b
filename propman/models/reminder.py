from datetime import date, datetime
from enum import Enum
from typing import List, Optional
from uuid import uuid4

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from .tenant import Tenant


class ReminderKind(str, Enum):
  due_soon = "due_soon"
  due_today = "due_today"
  overdue = "overdue"


class DueReminder(BaseModel):
  tenant: Tenant
  kind: ReminderKind
  daysOverdue: Optional[int] = None
  dueDate: Optional[date] = None

  @model_validator(mode="after")
  def check_days_overdue(self):
    if self.kind is ReminderKind.overdue and not self.daysOverdue:
      raise ValueError("overdue reminders need a positive daysOverdue")
    if self.kind is not ReminderKind.overdue and self.daysOverdue is not None:
      raise ValueError("daysOverdue only applies to overdue reminders")
    return self


class DispatchRecord(BaseModel):
  model_config = ConfigDict(frozen=True)

  id: str = Field(default_factory=lambda: str(uuid4()))
  tenantId: str
  tenantName: Optional[str] = None
  phone: Optional[str] = None
  reminderType: ReminderKind
  sentAt: datetime
  success: bool
  cost: float = 0
  messageId: Optional[str] = None
  error: Optional[str] = None


class DispatchStats(BaseModel):
  totalSent: int = 0
  totalFailed: int = 0
  totalCost: float = 0
  sentToday: int = 0
  successRate: float = 0


class PassSummary(BaseModel):
  ranAt: datetime
  skipped: Optional[str] = None
  checked: int = 0
  eligible: int = 0
  sent: int = 0
  failed: int = 0
  error: Optional[str] = None


class SchedulerStatus(BaseModel):
  running: bool
  pollIntervalMs: int
  businessHourStart: int
  businessHourEnd: int
  timezone: str


class UpcomingReminder(BaseModel):
  tenantId: str
  tenantName: str
  phone: str
  propertyName: str
  kind: ReminderKind
  daysOverdue: Optional[int] = None
  amount: float
  message: str


class UpcomingResponse(BaseModel):
  date: str
  totalRecipients: int
  reminders: List[UpcomingReminder]


class ReminderSendRequest(BaseModel):
  tenantIds: List[str] = Field(..., min_length=1)
  kind: Optional[ReminderKind] = None
  message: Optional[str] = None

  @field_validator("message")
  @classmethod
  def blank_means_default(cls, value: Optional[str]) -> Optional[str]:
    if value is None or not value.strip():
      return None
    return value.strip()


class ReminderSendResult(BaseModel):
  total: int = 0
  sent: int = 0
  failed: int = 0
  totalCost: float = 0
  skipped: List[str] = Field(default_factory=list)
  missing: List[str] = Field(default_factory=list)
  results: List[DispatchRecord] = Field(default_factory=list)
