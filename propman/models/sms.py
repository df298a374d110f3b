from typing import List, Optional

from pydantic import BaseModel, Field, field_validator


class SendResult(BaseModel):
  success: bool
  phone: str
  cost: float = 0
  messageId: Optional[str] = None
  error: Optional[str] = None


class SMSRequest(BaseModel):
  phone: str
  message: str

  @field_validator("message")
  @classmethod
  def require_text(cls, value: str) -> str:
    if not value.strip():
      raise ValueError("message must not be empty")
    return value.strip()


class BulkRecipient(SMSRequest):
  tenantName: Optional[str] = None


class BulkSMSRequest(BaseModel):
  recipients: List[BulkRecipient] = Field(..., min_length=1)


class BulkRecipientResult(BaseModel):
  phone: str
  success: bool
  messageId: Optional[str] = None
  error: Optional[str] = None


class BulkSendResult(BaseModel):
  success: bool
  totalCost: float = 0
  sentCount: int = 0
  failedCount: int = 0
  error: Optional[str] = None
  results: List[BulkRecipientResult] = Field(default_factory=list)


class PhoneValidation(BaseModel):
  phone: str
  normalized: str
  valid: bool
  kenyan: bool = False
