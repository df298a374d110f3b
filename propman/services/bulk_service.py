import asyncio
import logging
from typing import Awaitable, Callable, Sequence

from ..models.sms import BulkRecipient, BulkRecipientResult, BulkSendResult
from .sms_gateway import SMSGateway

logger = logging.getLogger(__name__)


async def send_bulk_sms(
  gateway: SMSGateway,
  recipients: Sequence[BulkRecipient],
  delay_ms: int = 500,
  sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> BulkSendResult:
  """Send each message in turn; one failed recipient never stops the batch."""
  logger.info("[SMS] Sending bulk SMS to %d recipients", len(recipients))
  results = []
  total_cost = 0.0
  for index, recipient in enumerate(recipients):
    if index and delay_ms:
      await sleep(delay_ms / 1000)
    try:
      outcome = await gateway.send(recipient.phone, recipient.message)
    except Exception as exc:
      logger.exception("[SMS] Unexpected error sending to %s", recipient.phone)
      results.append(BulkRecipientResult(phone=recipient.phone, success=False, error=str(exc)))
      continue
    if outcome.success:
      total_cost += outcome.cost
    results.append(
      BulkRecipientResult(
        phone=outcome.phone, success=outcome.success, messageId=outcome.messageId, error=outcome.error
      )
    )

  sent_count = sum(1 for result in results if result.success)
  failed_count = len(results) - sent_count
  logger.info("[SMS] Bulk results: %d sent, %d failed, cost %.2f", sent_count, failed_count, total_cost)
  return BulkSendResult(
    success=sent_count > 0,
    totalCost=total_cost,
    sentCount=sent_count,
    failedCount=failed_count,
    error=f"{failed_count} messages failed to send" if failed_count else None,
    results=results,
  )
