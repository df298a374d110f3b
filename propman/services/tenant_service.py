import logging
from typing import Any, Dict, List, Tuple

import httpx
from pydantic import ValidationError

from ..core.firebase import fetch_collection
from ..core.settings import Settings
from ..models.tenant import Property, Tenant, TenantStatus

logger = logging.getLogger(__name__)

TENANTS_RESOURCE = "tenants"
PROPERTIES_RESOURCE = "properties"


def map_tenant(tenant_id: str, raw: Any) -> Tenant:
  record = raw or {}
  return Tenant.model_validate(
    {
      "id": tenant_id,
      "name": (record.get("name") or "").strip(),
      "phone": (record.get("phone") or "").strip(),
      "rentAmount": float(record.get("rentAmount") or record.get("rent") or 0),
      # Older rows store the day of month under `dueDate`.
      "dueDay": record.get("dueDay") or record.get("dueDate"),
      "status": record.get("status") or TenantStatus.active.value,
      "propertyId": record.get("propertyId"),
    }
  )


def map_property(property_id: str, raw: Any) -> Property:
  record = raw or {}
  return Property(
    id=property_id,
    name=record.get("name") or "",
    location=record.get("location") or record.get("address"),
  )


async def fetch_tenants_and_properties(
  client: httpx.AsyncClient, settings: Settings, exclude_inactive: bool = False
) -> Tuple[List[Tenant], Dict[str, Property]]:
  tenants_snapshot = await fetch_collection(client, settings, TENANTS_RESOURCE)
  properties_snapshot = await fetch_collection(client, settings, PROPERTIES_RESOURCE)
  tenants = []
  for tenant_id, raw in tenants_snapshot.items():
    try:
      tenant = map_tenant(tenant_id, raw)
    except (ValidationError, AttributeError, TypeError, ValueError) as exc:
      logger.warning("[Reminders] Skipping malformed tenant %s: %s", tenant_id, exc)
      continue
    if exclude_inactive and tenant.status == TenantStatus.inactive:
      continue
    tenants.append(tenant)
  properties = {}
  for property_id, raw in properties_snapshot.items():
    try:
      properties[property_id] = map_property(property_id, raw)
    except (ValidationError, AttributeError) as exc:
      logger.warning("[Reminders] Skipping malformed property %s: %s", property_id, exc)
  return tenants, properties
