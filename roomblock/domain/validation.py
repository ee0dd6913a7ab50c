import re
from dataclasses import dataclass
from typing import Optional

from roomblock.domain.exceptions import ValidationError


_EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
_PHONE_CHARS_RE = re.compile(r"^\+?[\d\s\-()]+$")


@dataclass(frozen=True)
class GuestInfo:
    name: str
    email: Optional[str] = None
    phone: Optional[str] = None
    group: Optional[str] = None
    proximity_request: Optional[str] = None
    special_requests: Optional[str] = None


def normalize_guest_info(info: GuestInfo) -> GuestInfo:
    """Validate guest contact details and return a trimmed copy."""
    name = (info.name or "").strip()
    if not name:
        raise ValidationError("Guest name is required")

    email = (info.email or "").strip() or None
    if email is not None and not _EMAIL_RE.match(email):
        raise ValidationError(f"Invalid email address: {email}")

    phone = (info.phone or "").strip() or None
    if phone is not None:
        digits = re.sub(r"\D", "", phone)
        if not _PHONE_CHARS_RE.match(phone) or not 7 <= len(digits) <= 15:
            raise ValidationError(f"Invalid phone number: {phone}")

    return GuestInfo(
        name=name,
        email=email.lower() if email else None,
        phone=phone,
        group=(info.group or "").strip() or None,
        proximity_request=(info.proximity_request or "").strip() or None,
        special_requests=(info.special_requests or "").strip() or None,
    )


def validate_percent(value, field_name: str) -> None:
    if value is None or value <= 0 or value > 100:
        raise ValidationError(f"{field_name} must be between 0 and 100")
