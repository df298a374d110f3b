from datetime import datetime
from typing import Dict, List, Optional
from zoneinfo import ZoneInfo

import pytest

from propman.core.settings import Settings
from propman.models.sms import SendResult
from propman.models.tenant import Property, Tenant
from propman.services.sms_gateway import calculate_sms_cost, normalize_phone_number

NAIROBI = ZoneInfo("Africa/Nairobi")


@pytest.fixture
def anyio_backend():
  return "asyncio"


def make_settings(**overrides) -> Settings:
  values = {
    "reminder_enabled": False,
    "inter_message_delay_ms": 0,
    "dispatch_log_path": ":memory:",
    "reminder_tz": "Africa/Nairobi",
  }
  values.update(overrides)
  return Settings(_env_file=None, **values)


def make_tenant(tenant_id: str = "t1", **overrides) -> Tenant:
  values = {
    "id": tenant_id,
    "name": "Jane Wanjiru",
    "phone": "0712345678",
    "rentAmount": 15000,
    "dueDay": 15,
    "status": "active",
    "propertyId": "p1",
  }
  values.update(overrides)
  return Tenant(**values)


def local(year, month, day, hour=10, minute=0) -> datetime:
  return datetime(year, month, day, hour, minute, tzinfo=NAIROBI)


class Clock:
  def __init__(self, now: datetime):
    self.now = now

  def __call__(self) -> datetime:
    return self.now


class FakeGateway:
  """Records every send; the calls listed in `fail_on` (1-based) fail."""

  configured = True

  def __init__(self, fail_on=(), settings: Optional[Settings] = None):
    self.fail_on = set(fail_on)
    self.calls: List[tuple] = []
    self.settings = settings or make_settings()

  def normalize(self, phone: str) -> str:
    return normalize_phone_number(phone)

  async def send(self, phone: str, message: str) -> SendResult:
    self.calls.append((phone, message))
    destination = self.normalize(phone)
    cost = calculate_sms_cost(len(message))
    if len(self.calls) in self.fail_on:
      return SendResult(success=False, phone=destination, cost=cost, error="Network error")
    return SendResult(success=True, phone=destination, cost=cost, messageId=f"ATXid_{len(self.calls)}")


def snapshot_loader(tenants: List[Tenant], properties: Optional[Dict[str, Property]] = None):
  properties = properties if properties is not None else {"p1": Property(id="p1", name="Sunrise Apartments")}

  async def load():
    return list(tenants), dict(properties)

  return load
