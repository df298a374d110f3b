import logging
import random
import re
from typing import Optional

import httpx

from ..core.settings import Settings
from ..models.sms import SendResult

logger = logging.getLogger(__name__)

SHORT_SMS_LENGTH = 160
MEDIUM_SMS_LENGTH = 320
TEST_PHONE = "+254700000000"
TEST_MESSAGE = "Test message from PropMan SMS system"

_E164 = re.compile(r"^\+\d{10,15}$")
_KENYAN_PATTERNS = (
  re.compile(r"^254[17]\d{8}$"),
  re.compile(r"^0[17]\d{8}$"),
  re.compile(r"^[17]\d{8}$"),
)


def normalize_phone_number(phone: str, country_code: str = "254") -> str:
  cleaned = re.sub(r"\D", "", phone or "")
  if cleaned.startswith(country_code):
    return f"+{cleaned}"
  if cleaned.startswith("0"):
    return f"+{country_code}{cleaned[1:]}"
  if len(cleaned) == 9:
    return f"+{country_code}{cleaned}"
  return f"+{cleaned}"


def is_valid_phone_number(normalized: str) -> bool:
  return bool(_E164.match(normalized or ""))


def is_valid_kenyan_phone(phone: str) -> bool:
  cleaned = re.sub(r"\D", "", phone or "")
  return any(pattern.match(cleaned) for pattern in _KENYAN_PATTERNS)


def calculate_sms_cost(
  message_length: int, short_rate: float = 1.0, medium_rate: float = 2.0, long_rate: float = 3.0
) -> float:
  if message_length <= SHORT_SMS_LENGTH:
    return short_rate
  if message_length <= MEDIUM_SMS_LENGTH:
    return medium_rate
  return long_rate


class SMSGateway:
  """Adapter for the Africa's Talking messaging endpoint.

  `send` never raises: transport errors, rejected destinations and gateway
  errors all come back as a failed `SendResult` so a batch can carry on.
  """

  def __init__(self, settings: Settings, client: httpx.AsyncClient, rng: Optional[random.Random] = None):
    self.settings = settings
    self.client = client
    self.rng = rng or random.Random()

  @property
  def configured(self) -> bool:
    return self.settings.sms_configured

  @property
  def endpoint(self) -> str:
    return f"{self.settings.at_base_url.rstrip('/')}/version1/messaging"

  def normalize(self, phone: str) -> str:
    return normalize_phone_number(phone, self.settings.default_country_code)

  def estimate_cost(self, message: str) -> float:
    return calculate_sms_cost(
      len(message),
      self.settings.sms_cost_short,
      self.settings.sms_cost_medium,
      self.settings.sms_cost_long,
    )

  async def send(self, phone: str, message: str) -> SendResult:
    destination = self.normalize(phone)
    cost = self.estimate_cost(message)
    if not is_valid_phone_number(destination):
      logger.warning("[SMS] Invalid destination %r", phone)
      return SendResult(success=False, phone=destination, cost=cost, error=f"Invalid phone number: {phone}")
    if self.settings.simulated_failure_rate and self.rng.random() < self.settings.simulated_failure_rate:
      logger.warning("[SMS] Simulated failure for %s", destination)
      return SendResult(success=False, phone=destination, cost=cost, error="Simulated gateway failure")
    if not self.configured:
      return SendResult(success=False, phone=destination, cost=cost, error="SMS gateway not configured")

    form = {"username": self.settings.at_username, "to": destination, "message": message}
    if self.settings.sms_sender_id:
      form["from"] = self.settings.sms_sender_id
    headers = {"apiKey": self.settings.at_api_key or "", "Accept": "application/json"}
    try:
      response = await self.client.post(self.endpoint, data=form, headers=headers)
    except httpx.HTTPError as exc:
      logger.error("[SMS] Transport error sending to %s: %s", destination, exc)
      return SendResult(success=False, phone=destination, cost=cost, error=str(exc) or exc.__class__.__name__)
    if response.status_code >= 400:
      error = f"Gateway error {response.status_code}: {response.text}"
      logger.error("[SMS] %s", error)
      return SendResult(success=False, phone=destination, cost=cost, error=error)

    try:
      recipients = response.json()["SMSMessageData"]["Recipients"]
    except (ValueError, KeyError, TypeError):
      return SendResult(success=False, phone=destination, cost=cost, error="Unexpected gateway response")
    if not recipients:
      return SendResult(success=False, phone=destination, cost=cost, error="No recipients returned from gateway")
    recipient = recipients[0]
    if str(recipient.get("status", "")).lower() != "success":
      error = recipient.get("status") or "Rejected by gateway"
      logger.error("[SMS] Failed to send to %s: %s", destination, error)
      return SendResult(success=False, phone=destination, cost=cost, error=error)
    logger.info("[SMS] Sent to %s: %s", destination, recipient.get("messageId"))
    return SendResult(success=True, phone=destination, cost=cost, messageId=recipient.get("messageId"))

  async def test_connection(self) -> SendResult:
    return await self.send(TEST_PHONE, TEST_MESSAGE)
