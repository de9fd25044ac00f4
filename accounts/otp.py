from __future__ import annotations

import logging
import re
import secrets

from django.conf import settings
from django.contrib.auth.hashers import check_password, make_password
from django.utils import timezone

from api.errors import BusinessRuleError, ProviderError, RateLimited, RequestValidationError

from .models import PhoneOTP
from .sms import Fast2SmsApiError, send_otp_sms

logger = logging.getLogger(__name__)

INDIAN_MOBILE_RE = re.compile(r"^[6-9]\d{9}$")
OTP_LENGTH = 4


def normalize_phone(phone: str) -> str:
    digits = re.sub(r"\D", "", phone or "")
    # Accept +91 / 0 prefixes, the gateway wants the bare 10 digits.
    if len(digits) == 12 and digits.startswith("91"):
        digits = digits[2:]
    elif len(digits) == 11 and digits.startswith("0"):
        digits = digits[1:]
    return digits


def _generate_numeric_code(length: int = OTP_LENGTH) -> str:
    return str(secrets.randbelow(10**length)).zfill(length)


def send_phone_otp(*, phone: str) -> PhoneOTP:
    phone_n = normalize_phone(phone)
    if not INDIAN_MOBILE_RE.match(phone_n):
        raise RequestValidationError("Invalid mobile number", details={"phone": phone})

    ttl = int(getattr(settings, "PHONE_OTP_TTL_MINUTES", 5))
    max_sends = int(getattr(settings, "PHONE_OTP_MAX_SENDS", 3))

    otp = PhoneOTP.objects.filter(phone=phone_n).first()
    send_count = 0
    if otp is not None and not otp.is_expired:
        send_count = int(otp.send_count)
        if send_count >= max_sends:
            logger.warning("OTP send limit reached", extra={"phone": phone_n})
            raise RateLimited("Too many OTP requests. Please try again later.")

    code = _generate_numeric_code()
    try:
        send_otp_sms(phone=phone_n, code=code)
    except Fast2SmsApiError as exc:
        logger.exception("OTP SMS failed", extra={"phone": phone_n})
        raise ProviderError("Could not send OTP. Please try again.") from exc

    now = timezone.now()
    otp, _ = PhoneOTP.objects.update_or_create(
        phone=phone_n,
        defaults={
            "code_hash": make_password(code),
            "expires_at": PhoneOTP.new_expires_at(ttl),
            "send_count": send_count + 1,
            "attempts": 0,
            "last_sent_at": now,
        },
    )
    return otp


def verify_phone_otp(*, phone: str, code: str) -> None:
    """Raises on any mismatch; consumes the code on success."""

    phone_n = normalize_phone(phone)
    code = (code or "").strip()
    if not code:
        raise RequestValidationError("OTP is required")

    max_attempts = int(getattr(settings, "PHONE_OTP_MAX_ATTEMPTS", 5))

    otp = PhoneOTP.objects.filter(phone=phone_n).first()
    if otp is None:
        raise BusinessRuleError("Invalid OTP")
    if otp.is_expired:
        raise BusinessRuleError("OTP Expired")
    if otp.attempts >= max_attempts:
        raise RateLimited("Too many attempts")

    ok = check_password(code, otp.code_hash)
    otp.attempts += 1
    otp.save(update_fields=["attempts"])
    if not ok:
        logger.warning("OTP mismatch", extra={"phone": phone_n, "attempts": otp.attempts})
        raise BusinessRuleError("Invalid OTP")

    otp.delete()
