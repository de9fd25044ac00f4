from django.contrib import admin

from .models import EmailTemplate, OutboundEmail


@admin.register(EmailTemplate)
class EmailTemplateAdmin(admin.ModelAdmin):
    list_display = ("key", "name", "subject", "is_active", "updated_at")
    list_filter = ("is_active",)
    search_fields = ("key", "name", "subject")


@admin.register(OutboundEmail)
class OutboundEmailAdmin(admin.ModelAdmin):
    """Read-only mail log; rows are written by notifications.services."""

    list_display = ("id", "template_key", "to_email", "order", "status", "created_at")
    list_filter = ("status", "template_key")
    search_fields = ("to_email", "order__id", "order__phone")
    list_select_related = ("order",)
    date_hierarchy = "created_at"
    readonly_fields = [f.name for f in OutboundEmail._meta.fields]

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False
