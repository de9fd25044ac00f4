from django.contrib import admin

from .models import PhoneOTP


@admin.register(PhoneOTP)
class PhoneOTPAdmin(admin.ModelAdmin):
    list_display = ("phone", "send_count", "attempts", "expires_at", "last_sent_at")
    search_fields = ("phone",)
    readonly_fields = ("phone", "code_hash", "created_at", "expires_at", "send_count", "attempts", "last_sent_at")
    ordering = ("-last_sent_at",)

    def has_add_permission(self, request):
        return False
