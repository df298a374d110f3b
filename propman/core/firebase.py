from typing import Any, Dict, Optional

import httpx
from fastapi import HTTPException, status

from .settings import Settings


def build_firebase_url(settings: Settings, resource: str) -> str:
  if not settings.firebase_database_url:
    raise HTTPException(status_code=status.HTTP_500_INTERNAL_SERVER_ERROR, detail="Data store not configured.")
  base = str(settings.firebase_database_url).rstrip("/")
  path = f"{base}/{resource.strip('/')}.json"
  if settings.firebase_database_secret:
    return f"{path}?auth={settings.firebase_database_secret}"
  return path


async def fetch_collection(client: httpx.AsyncClient, settings: Settings, resource: str) -> Dict[str, Any]:
  """Read a whole collection; the store answers `null` for an empty one."""
  url = build_firebase_url(settings, resource)
  response = await client.get(url)
  if response.status_code >= 400:
    raise HTTPException(
      status_code=status.HTTP_502_BAD_GATEWAY,
      detail=f"Data store error {response.status_code}: {response.text}",
    )
  data: Optional[Any] = response.json() if response.text else None
  if isinstance(data, list):
    # Collections keyed by integers come back as sparse JSON arrays.
    return {str(index): item for index, item in enumerate(data) if item is not None}
  return data if isinstance(data, dict) else {}
