"""
Sellers App Models
Database schema for marketplace orders, payments, seller wallets, the wallet ledger and withdrawals
"""

from django.db import models
from django.conf import settings
from django.core.validators import MinValueValidator
from decimal import Decimal
import uuid

from core.utils.money import quantize, marketplace_setting


User = settings.AUTH_USER_MODEL


# ==========================================
# CATALOG (READ MODEL)
# ==========================================

class Product(models.Model):
    """
    Minimal product record the order flow prices and reserves stock against.
    Catalog management lives outside this app.
    """
    seller = models.ForeignKey(User, on_delete=models.CASCADE, related_name='products')
    title = models.CharField(max_length=200)
    price = models.DecimalField(
        max_digits=10,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    stock = models.PositiveIntegerField(default=0)
    is_active = models.BooleanField(default=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Product"
        verbose_name_plural = "Products"
        ordering = ['-created_at']

    def __str__(self):
        return self.title


# ==========================================
# ORDERS
# ==========================================

class Order(models.Model):
    """
    Buyer order, possibly spanning several sellers (one group of items per seller)
    """

    STATUS_PENDING = 'pending'
    STATUS_CONFIRMED = 'confirmed'
    STATUS_DISPATCHED = 'dispatched'
    STATUS_DELIVERED = 'delivered'
    STATUS_CANCELLED = 'cancelled'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending'),
        (STATUS_CONFIRMED, 'Confirmed'),
        (STATUS_DISPATCHED, 'Dispatched'),
        (STATUS_DELIVERED, 'Delivered'),
        (STATUS_CANCELLED, 'Cancelled'),
    ]

    # Forward-only; delivered and cancelled are terminal
    ALLOWED_TRANSITIONS = {
        STATUS_PENDING: [STATUS_CONFIRMED, STATUS_CANCELLED],
        STATUS_CONFIRMED: [STATUS_DISPATCHED, STATUS_CANCELLED],
        STATUS_DISPATCHED: [STATUS_DELIVERED],
        STATUS_DELIVERED: [],
        STATUS_CANCELLED: [],
    }

    PAYMENT_ONLINE = 'online'
    PAYMENT_COD = 'cod'

    PAYMENT_METHOD_CHOICES = [
        (PAYMENT_ONLINE, 'Online'),
        (PAYMENT_COD, 'Cash on Delivery'),
    ]

    PAYMENT_UNPAID = 'unpaid'
    PAYMENT_PAID = 'paid'
    PAYMENT_COD_PENDING = 'cod_pending'
    PAYMENT_COD_COLLECTED = 'cod_collected'

    PAYMENT_STATUS_CHOICES = [
        (PAYMENT_UNPAID, 'Unpaid'),
        (PAYMENT_PAID, 'Paid'),
        (PAYMENT_COD_PENDING, 'COD Pending'),
        (PAYMENT_COD_COLLECTED, 'COD Collected'),
    ]

    order_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    buyer = models.ForeignKey(User, on_delete=models.PROTECT, related_name='orders')

    # Order Details
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    payment_method = models.CharField(max_length=10, choices=PAYMENT_METHOD_CHOICES)
    payment_status = models.CharField(max_length=20, choices=PAYMENT_STATUS_CHOICES, default=PAYMENT_UNPAID)

    # Delivery address copied at checkout, never a reference to the address book
    address_snapshot = models.JSONField(default=dict)

    # Amounts
    subtotal = models.DecimalField(max_digits=12, decimal_places=2)
    gift_packaging_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    delivery_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    cod_fee = models.DecimalField(max_digits=10, decimal_places=2, default=0)
    total_amount = models.DecimalField(max_digits=12, decimal_places=2)
    commission_amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Platform commission accrued at confirmation"
    )

    # Courier tracking
    shipment_id = models.CharField(max_length=100, blank=True)
    awb_code = models.CharField(max_length=100, blank=True)
    courier_name = models.CharField(max_length=100, blank=True)
    shipment_status = models.CharField(max_length=50, blank=True)

    # Timestamps
    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)
    confirmed_at = models.DateTimeField(null=True, blank=True)
    dispatched_at = models.DateTimeField(null=True, blank=True)
    delivered_at = models.DateTimeField(null=True, blank=True)
    cancelled_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Order"
        verbose_name_plural = "Orders"
        ordering = ['-created_at']
        indexes = [
            models.Index(fields=['buyer', 'status'], name='order_buyer_status_idx'),
            models.Index(fields=['status', 'payment_status'], name='order_status_payment_idx'),
        ]

    def __str__(self):
        return f"Order #{self.order_id} - {self.status}"

    def can_transition_to(self, new_status):
        return new_status in self.ALLOWED_TRANSITIONS.get(self.status, [])

    @property
    def is_cod(self):
        return self.payment_method == self.PAYMENT_COD

    @property
    def seller_ids(self):
        return sorted({item.seller_id for item in self.items.all()})

    def seller_allocations(self):
        """
        Split total_amount across the sellers on this order.

        Each seller's base is their items plus their gift packaging. Delivery and
        COD fees follow that base proportionally, and the last seller (by id)
        absorbs the rounding remainder so the shares always sum to total_amount.

        Returns:
            List of (seller_id, allocated_amount) ordered by seller id
        """
        gift_fee = marketplace_setting('GIFT_PACKAGING_FEE')
        bases = {}
        for item in self.items.all():
            base = item.unit_price * item.quantity
            if item.gift_packaging:
                base += gift_fee
            bases[item.seller_id] = bases.get(item.seller_id, Decimal('0')) + base

        seller_ids = sorted(bases)
        if len(seller_ids) == 1:
            return [(seller_ids[0], quantize(self.total_amount))]

        total_base = sum(bases.values())
        allocations = []
        allocated = Decimal('0')
        for seller_id in seller_ids[:-1]:
            share = quantize(self.total_amount * bases[seller_id] / total_base)
            allocations.append((seller_id, share))
            allocated += share
        allocations.append((seller_ids[-1], quantize(self.total_amount) - allocated))
        return allocations


class OrderItem(models.Model):
    """
    One line of an order. Price and customizations are captured at checkout.
    """
    order = models.ForeignKey(Order, on_delete=models.CASCADE, related_name='items')
    product = models.ForeignKey(Product, on_delete=models.PROTECT, related_name='order_items')
    seller = models.ForeignKey(User, on_delete=models.PROTECT, related_name='sold_items')

    product_title = models.CharField(max_length=200)
    quantity = models.PositiveIntegerField(validators=[MinValueValidator(1)])
    unit_price = models.DecimalField(max_digits=10, decimal_places=2)
    gift_packaging = models.BooleanField(default=False)
    customizations = models.JSONField(
        default=list,
        blank=True,
        help_text="Ordered list of {question, answer} pairs"
    )

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Order Item"
        verbose_name_plural = "Order Items"
        ordering = ['id']

    def __str__(self):
        return f"{self.product_title} x{self.quantity}"

    @property
    def line_total(self):
        return self.unit_price * self.quantity


# ==========================================
# PAYMENTS
# ==========================================

class PaymentRecord(models.Model):
    """
    Gateway payment for an online order. COD orders never get one.
    """
    order = models.OneToOneField(Order, on_delete=models.PROTECT, related_name='payment')
    intent_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)

    gateway_order_id = models.CharField(max_length=100, unique=True)
    gateway_payment_id = models.CharField(max_length=100, unique=True, null=True, blank=True)
    signature = models.CharField(max_length=128, blank=True)
    receipt = models.CharField(max_length=100, blank=True)

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    currency = models.CharField(max_length=3, default='INR')

    verified = models.BooleanField(default=False)
    verified_at = models.DateTimeField(null=True, blank=True)

    # Failed signature checks, kept for support follow-up
    failed_attempts = models.PositiveIntegerField(default=0)
    last_error = models.CharField(max_length=255, blank=True)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Payment Record"
        verbose_name_plural = "Payment Records"
        ordering = ['-created_at']

    def __str__(self):
        state = 'verified' if self.verified else 'unverified'
        return f"{self.gateway_order_id} - ₹{self.amount} - {state}"


# ==========================================
# WALLET & LEDGER
# ==========================================

class Wallet(models.Model):
    """
    Seller wallet. The balances are a cached projection of the transaction log.
    """
    seller = models.OneToOneField(User, on_delete=models.CASCADE, related_name='wallet')

    available_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Settled funds the seller can withdraw"
    )
    pending_balance = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Accrued from confirmed orders awaiting delivery"
    )
    total_earned = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Seller-share credits not reversed"
    )
    total_withdrawn = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        default=0,
        help_text="Completed withdrawals"
    )

    # Optimistic lock counter, bumped on every balance change
    version = models.PositiveIntegerField(default=0)

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Wallet"
        verbose_name_plural = "Wallets"

    def __str__(self):
        return f"{self.seller.email}'s Wallet - ₹{self.available_balance}"


class WalletTransaction(models.Model):
    """
    Append-only wallet ledger entry. Rows are never updated or deleted.
    """

    CREDIT_PENDING = 'credit_pending'
    TRANSFER_PENDING_TO_AVAILABLE = 'transfer_pending_to_available'
    DEBIT_PENDING_REVERSAL = 'debit_pending_reversal'
    DEBIT_WITHDRAWAL_HOLD = 'debit_withdrawal_hold'
    DEBIT_WITHDRAWAL_REVERSAL = 'debit_withdrawal_reversal'
    CREDIT_WITHDRAWAL_REVERSAL = 'credit_withdrawal_reversal'
    WITHDRAWAL_PAYOUT = 'withdrawal_payout'

    TRANSACTION_TYPE_CHOICES = [
        (CREDIT_PENDING, 'Credit (pending)'),
        (TRANSFER_PENDING_TO_AVAILABLE, 'Transfer pending to available'),
        (DEBIT_PENDING_REVERSAL, 'Pending reversal'),
        (DEBIT_WITHDRAWAL_HOLD, 'Withdrawal hold'),
        (DEBIT_WITHDRAWAL_REVERSAL, 'Withdrawal re-hold'),
        (CREDIT_WITHDRAWAL_REVERSAL, 'Withdrawal hold released'),
        (WITHDRAWAL_PAYOUT, 'Withdrawal paid out'),
    ]

    # Signs applied to (available, pending, total_earned, total_withdrawn)
    BALANCE_EFFECTS = {
        CREDIT_PENDING: (0, 1, 1, 0),
        TRANSFER_PENDING_TO_AVAILABLE: (1, -1, 0, 0),
        DEBIT_PENDING_REVERSAL: (0, -1, -1, 0),
        DEBIT_WITHDRAWAL_HOLD: (-1, 0, 0, 0),
        DEBIT_WITHDRAWAL_REVERSAL: (-1, 0, 0, 0),
        CREDIT_WITHDRAWAL_REVERSAL: (1, 0, 0, 0),
        WITHDRAWAL_PAYOUT: (0, 0, 0, 1),
    }

    STATUS_CHOICES = [
        ('completed', 'Completed'),
    ]

    wallet = models.ForeignKey(Wallet, on_delete=models.PROTECT, related_name='transactions')
    transaction_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)

    transaction_type = models.CharField(max_length=40, choices=TRANSACTION_TYPE_CHOICES)
    amount = models.DecimalField(
        max_digits=12,
        decimal_places=2,
        validators=[MinValueValidator(Decimal('0.01'))]
    )
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='completed')
    description = models.CharField(max_length=255, blank=True)

    # Exactly one of these is set
    order = models.ForeignKey(
        Order, on_delete=models.PROTECT, null=True, blank=True, related_name='wallet_transactions'
    )
    withdrawal = models.ForeignKey(
        'WithdrawalRequest', on_delete=models.PROTECT, null=True, blank=True, related_name='wallet_transactions'
    )

    # Snapshots of both buckets around this entry
    balance_before = models.DecimalField(max_digits=12, decimal_places=2)
    balance_after = models.DecimalField(max_digits=12, decimal_places=2)
    pending_before = models.DecimalField(max_digits=12, decimal_places=2)
    pending_after = models.DecimalField(max_digits=12, decimal_places=2)

    created_at = models.DateTimeField(auto_now_add=True)

    class Meta:
        verbose_name = "Wallet Transaction"
        verbose_name_plural = "Wallet Transactions"
        ordering = ['-created_at', '-id']
        constraints = [
            models.UniqueConstraint(
                fields=['wallet', 'order', 'transaction_type'],
                condition=models.Q(order__isnull=False),
                name='unique_order_ledger_entry',
            ),
            models.UniqueConstraint(
                fields=['wallet', 'withdrawal', 'transaction_type'],
                condition=models.Q(withdrawal__isnull=False),
                name='unique_withdrawal_ledger_entry',
            ),
        ]

    def __str__(self):
        return f"{self.transaction_type} - ₹{self.amount}"

    def save(self, *args, **kwargs):
        if not self._state.adding:
            raise ValueError('Wallet transactions are append-only')
        super().save(*args, **kwargs)

    def delete(self, *args, **kwargs):
        raise ValueError('Wallet transactions are append-only')


# ==========================================
# WITHDRAWALS
# ==========================================

class WithdrawalRequest(models.Model):
    """
    Seller payout request. The amount is held out of the available balance
    from the moment of the request until the request is rejected or paid out.
    """

    STATUS_PENDING = 'pending'
    STATUS_APPROVED = 'approved'
    STATUS_REJECTED = 'rejected'
    STATUS_COMPLETED = 'completed'

    STATUS_CHOICES = [
        (STATUS_PENDING, 'Pending Review'),
        (STATUS_APPROVED, 'Approved'),
        (STATUS_REJECTED, 'Rejected'),
        (STATUS_COMPLETED, 'Completed'),
    ]

    ALLOWED_TRANSITIONS = {
        STATUS_PENDING: [STATUS_APPROVED, STATUS_REJECTED],
        STATUS_APPROVED: [STATUS_COMPLETED, STATUS_REJECTED],
        STATUS_REJECTED: [],
        STATUS_COMPLETED: [],
    }

    withdrawal_id = models.UUIDField(default=uuid.uuid4, editable=False, unique=True)
    seller = models.ForeignKey(User, on_delete=models.PROTECT, related_name='withdrawals')
    wallet = models.ForeignKey(Wallet, on_delete=models.PROTECT, related_name='withdrawals')

    amount = models.DecimalField(max_digits=12, decimal_places=2)
    bank_details = models.JSONField(
        default=dict,
        help_text="Snapshot of account number, IFSC and holder name at request time"
    )
    reference = models.CharField(max_length=100, unique=True)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default=STATUS_PENDING)
    failure_reason = models.TextField(blank=True, null=True)

    processed_by = models.ForeignKey(
        User, on_delete=models.SET_NULL, null=True, blank=True, related_name='processed_withdrawals'
    )

    requested_at = models.DateTimeField(auto_now_add=True)
    processed_at = models.DateTimeField(null=True, blank=True)

    class Meta:
        verbose_name = "Withdrawal Request"
        verbose_name_plural = "Withdrawal Requests"
        ordering = ['-requested_at']

    def __str__(self):
        return f"Withdrawal {self.reference} - ₹{self.amount} - {self.status}"

    def can_transition_to(self, new_status):
        return new_status in self.ALLOWED_TRANSITIONS.get(self.status, [])


# ==========================================
# PLATFORM EARNINGS
# ==========================================

class PlatformEarning(models.Model):
    """
    Commission the platform keeps from one seller's share of an order
    """

    STATUS_CHOICES = [
        ('earned', 'Earned'),
        ('reversed', 'Reversed'),
    ]

    order = models.ForeignKey(Order, on_delete=models.PROTECT, related_name='platform_earnings')
    seller = models.ForeignKey(User, on_delete=models.PROTECT, related_name='platform_earnings')

    order_amount = models.DecimalField(max_digits=12, decimal_places=2)
    commission_rate = models.DecimalField(max_digits=5, decimal_places=2)
    commission_amount = models.DecimalField(max_digits=12, decimal_places=2)
    seller_amount = models.DecimalField(max_digits=12, decimal_places=2)
    status = models.CharField(max_length=20, choices=STATUS_CHOICES, default='earned')

    created_at = models.DateTimeField(auto_now_add=True)
    updated_at = models.DateTimeField(auto_now=True)

    class Meta:
        verbose_name = "Platform Earning"
        verbose_name_plural = "Platform Earnings"
        ordering = ['-created_at']
        constraints = [
            models.UniqueConstraint(fields=['order', 'seller'], name='unique_earning_per_order_seller'),
        ]

    def __str__(self):
        return f"₹{self.commission_amount} on {self.order.order_id} ({self.status})"
