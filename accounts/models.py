from __future__ import annotations

from datetime import timedelta

from django.db import models
from django.utils import timezone


class PhoneOTP(models.Model):
    """One live code per phone number; replaced on every send."""

    phone = models.CharField(max_length=15, unique=True)
    code_hash = models.CharField(max_length=256)

    created_at = models.DateTimeField(auto_now_add=True)
    expires_at = models.DateTimeField(db_index=True)

    # Sends within the current expiry window.
    send_count = models.PositiveIntegerField(default=0)
    attempts = models.PositiveIntegerField(default=0)
    last_sent_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Phone OTP"

    def __str__(self) -> str:
        return f"otp:{self.phone}"

    @property
    def is_expired(self) -> bool:
        return timezone.now() >= self.expires_at

    @classmethod
    def new_expires_at(cls, ttl_minutes: int) -> timezone.datetime:
        return timezone.now() + timedelta(minutes=ttl_minutes)
