import re
from datetime import date
from typing import Dict, Optional

from ..core.settings import Settings
from ..models.reminder import DueReminder, ReminderKind

DEFAULT_CURRENCY = "KES"
DEFAULT_PAYBILL = "696385"
DEFAULT_MPESA_PHONE = "0705441549"
FALLBACK_PROPERTY_NAME = "your property"


def format_currency(amount: float, currency: str = DEFAULT_CURRENCY) -> str:
  if float(amount).is_integer():
    return f"{currency} {amount:,.0f}"
  return f"{currency} {amount:,.2f}"


def ordinal(day: int) -> str:
  if 11 <= day % 100 <= 13:
    return f"{day}th"
  suffix = {1: "st", 2: "nd", 3: "rd"}.get(day % 10, "th")
  return f"{day}{suffix}"


def create_rent_reminder_message(
  kind: ReminderKind,
  tenant_name: str,
  amount: float,
  property_name: str,
  due_day: int,
  days_overdue: Optional[int] = None,
  *,
  days_before: int = 3,
  currency: str = DEFAULT_CURRENCY,
  paybill: str = DEFAULT_PAYBILL,
  mpesa_phone: str = DEFAULT_MPESA_PHONE,
) -> str:
  kind = ReminderKind(kind)
  formatted_amount = format_currency(amount, currency)
  property_name = property_name or FALLBACK_PROPERTY_NAME
  if kind is ReminderKind.due_soon:
    return (
      f"Hi {tenant_name}, your rent of {formatted_amount} for {property_name} is due in {days_before} days "
      f"({ordinal(due_day)}). Pay via M-Pesa: Paybill {paybill} or Send to {mpesa_phone}. Thank you."
    )
  if kind is ReminderKind.due_today:
    return (
      f"Hi {tenant_name}, your rent of {formatted_amount} for {property_name} is due TODAY "
      f"({ordinal(due_day)}). Pay via M-Pesa: Paybill {paybill} or Send to {mpesa_phone}. Contact us for assistance."
    )
  if days_overdue is None:
    raise ValueError("days_overdue is required for overdue reminders")
  return (
    f"Hi {tenant_name}, your rent of {formatted_amount} for {property_name} is {days_overdue} days overdue. "
    f"Please settle immediately to avoid penalties. Pay via M-Pesa: Paybill {paybill} or {mpesa_phone}."
  )


def effective_due_day(reminder: DueReminder) -> int:
  if reminder.dueDate is not None:
    return reminder.dueDate.day
  return reminder.tenant.dueDay


def days_until_due(reminder: DueReminder, today: Optional[date], settings: Settings) -> int:
  if today is not None and reminder.dueDate is not None and reminder.dueDate >= today:
    return (reminder.dueDate - today).days
  return settings.reminder_days_before


def format_reminder(
  reminder: DueReminder, property_name: Optional[str], settings: Settings, today: Optional[date] = None
) -> str:
  tenant = reminder.tenant
  return create_rent_reminder_message(
    reminder.kind,
    tenant.name,
    tenant.rentAmount,
    property_name or FALLBACK_PROPERTY_NAME,
    effective_due_day(reminder),
    reminder.daysOverdue,
    days_before=days_until_due(reminder, today, settings),
    currency=settings.currency,
    paybill=settings.mpesa_paybill,
    mpesa_phone=settings.mpesa_phone,
  )


def render_template(template: str, context: Dict[str, str]) -> str:
  """Replace `{{ name }}` tokens with values from `context`; unknown tokens render empty."""

  def _replace(match):
    token = match.group(1).strip().lower()
    return context.get(token, "")

  return re.sub(r"{{\s*(\w+)\s*}}", _replace, template)


def reminder_context(
  reminder: DueReminder, property_name: Optional[str], settings: Settings, today: Optional[date] = None
) -> Dict[str, str]:
  tenant = reminder.tenant
  due_day = effective_due_day(reminder)
  return {
    "name": tenant.name,
    "tenant": tenant.name,
    "first_name": tenant.name.split(" ")[0],
    "amount": format_currency(tenant.rentAmount, settings.currency),
    "property": property_name or FALLBACK_PROPERTY_NAME,
    "due_day": ordinal(due_day),
    "due_date": reminder.dueDate.isoformat() if reminder.dueDate else "",
    "days_overdue": str(reminder.daysOverdue or ""),
    "days_until_due": str(days_until_due(reminder, today, settings)) if reminder.kind is ReminderKind.due_soon else "",
    "paybill": settings.mpesa_paybill,
    "mpesa_phone": settings.mpesa_phone,
  }
