"""
Sellers App Django Admin
Orders, payments, seller wallets, the ledger, withdrawals and platform earnings
"""

from django.contrib import admin
from django.contrib import messages

from .models import (
    Product, Order, OrderItem, PaymentRecord, Wallet, WalletTransaction,
    WithdrawalRequest, PlatformEarning
)
from .services import withdrawals as withdrawal_service
from .services.exceptions import MarketplaceError


# ==========================================
# INLINE ADMIN CLASSES
# ==========================================

class OrderItemInline(admin.TabularInline):
    """Order lines are captured at checkout and never edited"""
    model = OrderItem
    extra = 0
    can_delete = False
    readonly_fields = [
        'product', 'seller', 'product_title', 'quantity', 'unit_price',
        'gift_packaging', 'customizations'
    ]

    def has_add_permission(self, request, obj=None):
        return False


# ==========================================
# CATALOG ADMIN
# ==========================================

@admin.register(Product)
class ProductAdmin(admin.ModelAdmin):
    list_display = ['title', 'seller', 'price', 'stock', 'is_active']
    list_filter = ['is_active']
    search_fields = ['title', 'seller__email', 'seller__business_name']


# ==========================================
# ORDERS & PAYMENTS ADMIN
# ==========================================

@admin.register(Order)
class OrderAdmin(admin.ModelAdmin):
    list_display = [
        'order_id_short', 'buyer', 'status', 'payment_method',
        'payment_status', 'total_amount', 'created_at'
    ]
    list_filter = ['status', 'payment_method', 'payment_status', 'created_at']
    search_fields = ['order_id', 'buyer__email', 'awb_code', 'payment__gateway_order_id']
    inlines = [OrderItemInline]

    # Status changes go through the API so the ledger stays in step
    readonly_fields = [
        'order_id', 'buyer', 'status', 'payment_method', 'payment_status',
        'address_snapshot', 'subtotal', 'gift_packaging_fee', 'delivery_fee',
        'cod_fee', 'total_amount', 'commission_amount', 'created_at',
        'confirmed_at', 'dispatched_at', 'delivered_at', 'cancelled_at'
    ]

    fieldsets = (
        ('Order', {
            'fields': ('order_id', 'buyer', 'status', 'address_snapshot')
        }),
        ('Payment', {
            'fields': ('payment_method', 'payment_status')
        }),
        ('Amounts', {
            'fields': (
                'subtotal', 'gift_packaging_fee', 'delivery_fee', 'cod_fee',
                'total_amount', 'commission_amount'
            )
        }),
        ('Shipping', {
            'fields': ('shipment_id', 'awb_code', 'courier_name', 'shipment_status')
        }),
        ('Timeline', {
            'fields': ('created_at', 'confirmed_at', 'dispatched_at', 'delivered_at', 'cancelled_at'),
            'classes': ('collapse',)
        }),
    )

    def order_id_short(self, obj):
        return str(obj.order_id)[:8]
    order_id_short.short_description = 'Order ID'

    def has_delete_permission(self, request, obj=None):
        return False


@admin.register(PaymentRecord)
class PaymentRecordAdmin(admin.ModelAdmin):
    list_display = ['gateway_order_id', 'order', 'amount', 'verified', 'failed_attempts', 'created_at']
    list_filter = ['verified', 'created_at']
    search_fields = ['gateway_order_id', 'gateway_payment_id', 'order__order_id']
    readonly_fields = [
        'order', 'intent_id', 'gateway_order_id', 'gateway_payment_id', 'signature',
        'receipt', 'amount', 'currency', 'verified', 'verified_at',
        'failed_attempts', 'last_error', 'created_at'
    ]

    def has_add_permission(self, request):
        return False


# ==========================================
# WALLET & LEDGER ADMIN
# ==========================================

@admin.register(Wallet)
class WalletAdmin(admin.ModelAdmin):
    list_display = [
        'seller', 'available_balance', 'pending_balance',
        'total_earned', 'total_withdrawn', 'updated_at'
    ]
    search_fields = ['seller__email', 'seller__business_name']
    readonly_fields = [
        'seller', 'available_balance', 'pending_balance', 'total_earned',
        'total_withdrawn', 'version', 'created_at', 'updated_at'
    ]

    def has_add_permission(self, request):
        return False


@admin.register(WalletTransaction)
class WalletTransactionAdmin(admin.ModelAdmin):
    list_display = [
        'transaction_id_short', 'wallet_seller', 'transaction_type',
        'amount', 'balance_after', 'pending_after', 'created_at'
    ]
    list_filter = ['transaction_type', 'created_at']
    search_fields = ['transaction_id', 'wallet__seller__email', 'order__order_id', 'withdrawal__reference']

    def transaction_id_short(self, obj):
        return str(obj.transaction_id)[:8]
    transaction_id_short.short_description = 'Transaction ID'

    def wallet_seller(self, obj):
        return obj.wallet.seller.email
    wallet_seller.short_description = 'Seller'

    def has_add_permission(self, request):
        return False

    def has_change_permission(self, request, obj=None):
        return False

    def has_delete_permission(self, request, obj=None):
        return False


# ==========================================
# WITHDRAWALS ADMIN
# ==========================================

@admin.register(WithdrawalRequest)
class WithdrawalRequestAdmin(admin.ModelAdmin):
    list_display = ['reference', 'seller', 'amount', 'status', 'requested_at', 'processed_at']
    list_filter = ['status', 'requested_at']
    search_fields = ['reference', 'seller__email']
    readonly_fields = [
        'withdrawal_id', 'reference', 'seller', 'wallet', 'amount', 'bank_details',
        'status', 'failure_reason', 'processed_by', 'requested_at', 'processed_at'
    ]
    actions = ['approve_withdrawals', 'reject_withdrawals', 'complete_withdrawals']

    def has_add_permission(self, request):
        return False

    def has_delete_permission(self, request, obj=None):
        return False

    def _resolve(self, request, queryset, outcome):
        done, failed = 0, []
        for withdrawal in queryset:
            try:
                withdrawal_service.resolve_withdrawal(withdrawal.withdrawal_id, outcome, request.user)
                done += 1
            except MarketplaceError as e:
                failed.append(f'{withdrawal.reference}: {e.message}')
        return done, failed

    def approve_withdrawals(self, request, queryset):
        """Approve pending withdrawals"""
        count, failed = self._resolve(request, queryset, 'approved')
        self.message_user(request, f'✓ Approved {count} withdrawal(s)', messages.SUCCESS)
        if failed:
            self.message_user(request, 'Skipped: ' + '; '.join(failed), messages.WARNING)
    approve_withdrawals.short_description = 'Approve selected withdrawals'

    def reject_withdrawals(self, request, queryset):
        """Reject and release the held amount back to the seller"""
        count, failed = self._resolve(request, queryset, 'rejected')
        self.message_user(request, f'✗ Rejected {count} withdrawal(s)', messages.WARNING)
        if failed:
            self.message_user(request, 'Skipped: ' + '; '.join(failed), messages.WARNING)
    reject_withdrawals.short_description = 'Reject selected withdrawals'

    def complete_withdrawals(self, request, queryset):
        """Mark approved withdrawals as paid out"""
        count, failed = self._resolve(request, queryset, 'completed')
        self.message_user(request, f'✓ Completed {count} withdrawal(s)', messages.SUCCESS)
        if failed:
            self.message_user(request, 'Skipped: ' + '; '.join(failed), messages.WARNING)
    complete_withdrawals.short_description = 'Mark selected withdrawals as paid'


# ==========================================
# PLATFORM EARNINGS ADMIN
# ==========================================

@admin.register(PlatformEarning)
class PlatformEarningAdmin(admin.ModelAdmin):
    list_display = ['order', 'seller', 'order_amount', 'commission_amount', 'seller_amount', 'status', 'created_at']
    list_filter = ['status', 'created_at']
    search_fields = ['order__order_id', 'seller__email']
    readonly_fields = [
        'order', 'seller', 'order_amount', 'commission_rate',
        'commission_amount', 'seller_amount', 'status', 'created_at'
    ]

    def has_add_permission(self, request):
        return False
