import functools
from typing import List, Optional

from pydantic import AnyHttpUrl, Field, field_validator, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict


def _split_csv(value: Optional[str]) -> List[str]:
  if not value:
    return []
  return [item.strip() for item in value.split(",") if item.strip()]


class Settings(BaseSettings):
  model_config = SettingsConfigDict(env_file=".env", extra="ignore", populate_by_name=True)

  port: int = Field(4000, alias="PORT")
  client_origin: str = Field("http://localhost:3000", alias="CLIENT_ORIGIN")
  log_level: str = Field("INFO", alias="LOG_LEVEL")

  firebase_database_url: Optional[AnyHttpUrl] = Field(None, alias="FIREBASE_DATABASE_URL")
  firebase_database_secret: Optional[str] = Field(None, alias="FIREBASE_DATABASE_SECRET")

  at_username: str = Field("sandbox", alias="AT_USERNAME")
  at_api_key: Optional[str] = Field(None, alias="AT_API_KEY")
  at_base_url: str = Field("https://api.sandbox.africastalking.com", alias="AT_BASE_URL")
  sms_sender_id: Optional[str] = Field(None, alias="SMS_SENDER_ID")
  default_country_code: str = Field("254", alias="DEFAULT_COUNTRY_CODE")

  currency: str = Field("KES", alias="CURRENCY")
  mpesa_paybill: str = Field("696385", alias="MPESA_PAYBILL")
  mpesa_phone: str = Field("0705441549", alias="MPESA_PHONE")
  sms_cost_short: float = Field(1.0, alias="SMS_COST_SHORT")
  sms_cost_medium: float = Field(2.0, alias="SMS_COST_MEDIUM")
  sms_cost_long: float = Field(3.0, alias="SMS_COST_LONG")

  reminder_enabled: Optional[bool] = Field(None, alias="REMINDER_ENABLED")
  reminder_tz: str = Field("Africa/Nairobi", alias="REMINDER_TZ")
  business_hour_start: int = Field(8, alias="BUSINESS_HOUR_START")
  business_hour_end: int = Field(18, alias="BUSINESS_HOUR_END")
  poll_interval_ms: int = Field(3_600_000, alias="POLL_INTERVAL_MS", gt=0)
  reminder_days_before: int = Field(3, alias="REMINDER_DAYS_BEFORE", ge=1)
  reminder_days_after: int = Field(3, alias="REMINDER_DAYS_AFTER", ge=1)
  inter_message_delay_ms: int = Field(500, alias="INTER_MESSAGE_DELAY_MS", ge=0)
  # Test-only fault injection, keep at 0 in production.
  simulated_failure_rate: float = Field(0.0, alias="SIMULATED_FAILURE_RATE")
  dispatch_log_path: str = Field("data/dispatch_log.sqlite3", alias="DISPATCH_LOG_PATH")

  allowed_origins: List[str] = Field(default_factory=list)

  @field_validator("allowed_origins", mode="before")
  @classmethod
  def fill_origins(cls, value, info):
    if value:
      return value
    client_origin = info.data.get("client_origin") or "http://localhost:3000"
    return _split_csv(client_origin)

  @field_validator("reminder_enabled", mode="before")
  @classmethod
  def normalize_bool(cls, value):
    if value is None:
      return None
    if isinstance(value, bool):
      return value
    normalized = str(value).strip().lower()
    if normalized in {"1", "true", "yes", "on"}:
      return True
    if normalized in {"0", "false", "no", "off"}:
      return False
    return None

  @field_validator("business_hour_start", "business_hour_end")
  @classmethod
  def check_hour(cls, value: int) -> int:
    if not 0 <= value <= 23:
      raise ValueError("business hours must be between 0 and 23")
    return value

  @field_validator("simulated_failure_rate")
  @classmethod
  def check_rate(cls, value: float) -> float:
    if not 0.0 <= value <= 1.0:
      raise ValueError("simulated_failure_rate must be between 0 and 1")
    return value

  @model_validator(mode="after")
  def check_window(self):
    if self.business_hour_start > self.business_hour_end:
      raise ValueError("business_hour_start must not be after business_hour_end")
    return self

  @property
  def sms_configured(self) -> bool:
    return bool(self.at_api_key)

  @property
  def reminder_active(self) -> bool:
    if self.reminder_enabled is None:
      return self.sms_configured
    return self.reminder_enabled


@functools.lru_cache
def get_settings() -> Settings:
  return Settings()  # type: ignore[arg-type]
