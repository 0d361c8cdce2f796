from django.contrib import admin
from .models import Transaction, WebhookSubscription

@admin.register(Transaction)
class TransactionAdmin(admin.ModelAdmin):
    list_display = ('reference', 'phone_number', 'amount', 'status', 'user', 'package', 'created_at')
    list_filter = ('status', 'payment_method')
    search_fields = ('reference', 'phone_number', 'checkout_request_id', 'merchant_request_id')
    readonly_fields = (
        'id', 'reference', 'user', 'package', 'phone_number', 'amount', 'currency', 'payment_method',
        'status', 'checkout_request_id', 'merchant_request_id', 'metadata', 'created_at', 'updated_at',
    )

    # Transactions are an audit trail.
    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(WebhookSubscription)
class WebhookSubscriptionAdmin(admin.ModelAdmin):
    list_display = ('url', 'events', 'is_active', 'created_at')
    list_filter = ('is_active',)
    search_fields = ('url', 'description')

    def has_add_permission(self, request):
        # Registration goes through the API so the secret can be shown once.
        return False
