from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field


class TenantStatus(str, Enum):
  active = "active"
  inactive = "inactive"
  suspended = "suspended"
  defaulter = "defaulter"


class Tenant(BaseModel):
  id: str
  name: str
  phone: str
  rentAmount: float = 0
  dueDay: int = Field(..., ge=1, le=31)
  status: TenantStatus = TenantStatus.active
  propertyId: Optional[str] = None


class Property(BaseModel):
  id: str
  name: str
  location: Optional[str] = None
