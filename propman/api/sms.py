from fastapi import APIRouter, HTTPException, Request, status

from ..models.sms import BulkSendResult, BulkSMSRequest, PhoneValidation, SendResult, SMSRequest
from ..services.bulk_service import send_bulk_sms
from ..services.sms_gateway import SMSGateway, is_valid_kenyan_phone, is_valid_phone_number

router = APIRouter(prefix="/api/sms", tags=["sms"])


def get_gateway(request: Request) -> SMSGateway:
  return request.app.state.gateway


def require_configured(gateway: SMSGateway) -> None:
  if not gateway.configured:
    raise HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail="SMS gateway not configured.")


@router.post("/send", response_model=SendResult)
async def send_sms(payload: SMSRequest, request: Request):
  gateway = get_gateway(request)
  require_configured(gateway)
  return await gateway.send(payload.phone, payload.message)


@router.post("/bulk", response_model=BulkSendResult)
async def send_bulk(payload: BulkSMSRequest, request: Request):
  gateway = get_gateway(request)
  require_configured(gateway)
  return await send_bulk_sms(gateway, payload.recipients, gateway.settings.inter_message_delay_ms)


@router.post("/test", response_model=SendResult)
async def test_sms_connection(request: Request):
  gateway = get_gateway(request)
  require_configured(gateway)
  return await gateway.test_connection()


@router.get("/validate", response_model=PhoneValidation)
async def validate_phone(phone: str, request: Request):
  normalized = get_gateway(request).normalize(phone)
  return PhoneValidation(
    phone=phone,
    normalized=normalized,
    valid=is_valid_phone_number(normalized),
    kenyan=is_valid_kenyan_phone(normalized),
  )
