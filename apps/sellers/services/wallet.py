"""
Wallet Ledger Service
Seller balance buckets and the append-only transaction log behind them

Every balance change goes through post_entry(), which must run inside
transaction.atomic(). It locks the wallet row, applies the entry's bucket
effects with a compare-and-set on Wallet.version and appends exactly one
WalletTransaction. The stored balances can always be rebuilt with replay().
"""

import logging
from decimal import Decimal
from typing import Dict, List, Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.utils.money import quantize, marketplace_setting, split_commission
from ..models import Wallet, WalletTransaction, PlatformEarning, Order
from .exceptions import (
    OrderValidationError, InsufficientBalance, IllegalState, LedgerConflict
)

logger = logging.getLogger(__name__)

ZERO = Decimal('0.00')


# ==========================================
# LOW-LEVEL POSTING
# ==========================================

def get_or_create_wallet(seller_id: int, lock: bool = False) -> Wallet:
    """
    Fetch a seller's wallet, creating it on first use.

    Args:
        seller_id: Primary key of the seller user
        lock: Take a row lock (callers must be inside transaction.atomic)
    """
    queryset = Wallet.objects.select_for_update() if lock else Wallet.objects
    wallet, created = queryset.get_or_create(seller_id=seller_id)
    if created:
        logger.info(f'Wallet created on first use for seller {seller_id}')
    return wallet


def post_entry(
    wallet_id: int,
    transaction_type: str,
    amount: Decimal,
    order: Optional[Order] = None,
    withdrawal=None,
    description: str = '',
) -> WalletTransaction:
    """
    Apply one ledger entry to a wallet and append it to the log.

    Args:
        wallet_id: Wallet to mutate
        transaction_type: One of WalletTransaction.TRANSACTION_TYPE_CHOICES
        amount: Positive amount; its direction comes from BALANCE_EFFECTS
        order: Related order (order-driven entries)
        withdrawal: Related withdrawal request (withdrawal-driven entries)
        description: Free text shown in wallet history

    Returns:
        The appended WalletTransaction

    Raises:
        InsufficientBalance: Entry would take available balance below zero
        IllegalState: Entry would take pending balance or total earned below zero
        LedgerConflict: Wallet version kept moving until retries ran out
    """
    amount = quantize(amount)
    if amount <= 0:
        raise OrderValidationError('Ledger amounts must be positive', code='invalid_amount')

    d_available, d_pending, d_earned, d_withdrawn = WalletTransaction.BALANCE_EFFECTS[transaction_type]
    max_attempts = marketplace_setting('LEDGER_MAX_RETRIES')

    for attempt in range(1, max_attempts + 1):
        wallet = Wallet.objects.select_for_update().get(pk=wallet_id)

        new_available = wallet.available_balance + d_available * amount
        new_pending = wallet.pending_balance + d_pending * amount
        new_earned = wallet.total_earned + d_earned * amount
        new_withdrawn = wallet.total_withdrawn + d_withdrawn * amount

        if new_available < 0:
            raise InsufficientBalance(
                f'Available balance ₹{wallet.available_balance} is less than ₹{amount}',
                details={'available_balance': str(wallet.available_balance)}
            )
        if new_pending < 0 or new_earned < 0:
            raise IllegalState(
                f'{transaction_type} of ₹{amount} exceeds the pending balance of wallet {wallet_id}'
            )

        updated = Wallet.objects.filter(pk=wallet.pk, version=wallet.version).update(
            available_balance=new_available,
            pending_balance=new_pending,
            total_earned=new_earned,
            total_withdrawn=new_withdrawn,
            version=F('version') + 1,
            updated_at=timezone.now(),
        )
        if not updated:
            logger.warning(
                f'Wallet {wallet_id} version moved during {transaction_type} '
                f'(attempt {attempt}/{max_attempts}), retrying'
            )
            continue

        entry = WalletTransaction.objects.create(
            wallet_id=wallet.pk,
            transaction_type=transaction_type,
            amount=amount,
            order=order,
            withdrawal=withdrawal,
            description=description,
            balance_before=wallet.available_balance,
            balance_after=new_available,
            pending_before=wallet.pending_balance,
            pending_after=new_pending,
        )
        logger.info(
            f'Ledger {transaction_type} ₹{amount} on wallet {wallet_id}: '
            f'available {wallet.available_balance}->{new_available}, '
            f'pending {wallet.pending_balance}->{new_pending}'
        )
        return entry

    raise LedgerConflict(f'Wallet {wallet_id} is busy, please retry')


def _order_entries(order: Order, transaction_type: str):
    return WalletTransaction.objects.filter(order=order, transaction_type=transaction_type)


def _has_entry(wallet_id: int, order: Order, transaction_type: str) -> bool:
    return _order_entries(order, transaction_type).filter(wallet_id=wallet_id).exists()


# ==========================================
# ORDER LIFECYCLE
# ==========================================

@transaction.atomic
def accrue_pending(order: Order) -> List[WalletTransaction]:
    """
    Credit each seller's share of a confirmed order to their pending balance.

    Sellers already credited for this order are skipped, so a repeated call
    changes nothing. Wallets are locked in seller-id order.

    Returns:
        The credit_pending entries appended by this call
    """
    rate = marketplace_setting('COMMISSION_RATE')
    entries = []
    commission_total = ZERO

    for seller_id, allocated in order.seller_allocations():
        wallet = get_or_create_wallet(seller_id, lock=True)
        if _has_entry(wallet.pk, order, WalletTransaction.CREDIT_PENDING):
            logger.info(f'Order {order.order_id} already accrued for seller {seller_id}')
            continue

        commission, seller_share = split_commission(allocated, rate)
        entry = post_entry(
            wallet.pk,
            WalletTransaction.CREDIT_PENDING,
            seller_share,
            order=order,
            description=f'Order #{str(order.order_id)[:8]} confirmed',
        )
        PlatformEarning.objects.create(
            order=order,
            seller_id=seller_id,
            order_amount=allocated,
            commission_rate=rate,
            commission_amount=commission,
            seller_amount=seller_share,
        )
        entries.append(entry)
        commission_total += commission

    if entries:
        Order.objects.filter(pk=order.pk).update(
            commission_amount=F('commission_amount') + commission_total
        )
        order.refresh_from_db(fields=['commission_amount'])

    return entries


@transaction.atomic
def settle(order: Order) -> List[WalletTransaction]:
    """
    Move every accrued share of a delivered order from pending to available.

    Idempotent per (wallet, order). Total earned is not touched. Wallets are
    locked in seller-id order, the same order accrue_pending uses.

    Raises:
        IllegalState: Nothing was accrued, or the accrual was already reversed
    """
    credits = list(_order_entries(order, WalletTransaction.CREDIT_PENDING).order_by('wallet__seller_id'))
    if not credits:
        raise IllegalState(f'Order {order.order_id} has no accrual to settle')

    entries = []
    for credit in credits:
        Wallet.objects.select_for_update().get(pk=credit.wallet_id)

        if _has_entry(credit.wallet_id, order, WalletTransaction.DEBIT_PENDING_REVERSAL):
            raise IllegalState(f'Order {order.order_id} accrual was reversed and cannot settle')
        if _has_entry(credit.wallet_id, order, WalletTransaction.TRANSFER_PENDING_TO_AVAILABLE):
            logger.info(f'Order {order.order_id} already settled for wallet {credit.wallet_id}')
            continue

        entries.append(post_entry(
            credit.wallet_id,
            WalletTransaction.TRANSFER_PENDING_TO_AVAILABLE,
            credit.amount,
            order=order,
            description=f'Order #{str(order.order_id)[:8]} delivered',
        ))

    return entries


@transaction.atomic
def reverse(order: Order) -> List[WalletTransaction]:
    """
    Undo the pending accrual of a cancelled order.

    Orders that never accrued are a no-op. Platform earnings for the order are
    marked reversed. Wallets are locked in seller-id order.

    Raises:
        IllegalState: Any share of the order already settled
    """
    credits = list(_order_entries(order, WalletTransaction.CREDIT_PENDING).order_by('wallet__seller_id'))
    entries = []

    for credit in credits:
        Wallet.objects.select_for_update().get(pk=credit.wallet_id)

        if _has_entry(credit.wallet_id, order, WalletTransaction.TRANSFER_PENDING_TO_AVAILABLE):
            raise IllegalState(f'Order {order.order_id} is already settled and cannot be reversed')
        if _has_entry(credit.wallet_id, order, WalletTransaction.DEBIT_PENDING_REVERSAL):
            continue

        entries.append(post_entry(
            credit.wallet_id,
            WalletTransaction.DEBIT_PENDING_REVERSAL,
            credit.amount,
            order=order,
            description=f'Order #{str(order.order_id)[:8]} cancelled',
        ))

    if entries:
        PlatformEarning.objects.filter(order=order).update(status='reversed', updated_at=timezone.now())

    return entries


# ==========================================
# REPLAY & RECONCILIATION
# ==========================================

BALANCE_FIELDS = ('available_balance', 'pending_balance', 'total_earned', 'total_withdrawn')


def replay(wallet: Wallet) -> Dict[str, Decimal]:
    """
    Rebuild a wallet's balances from its transaction log alone.
    """
    totals = dict.fromkeys(BALANCE_FIELDS, ZERO)

    rows = wallet.transactions.order_by('id').values_list('transaction_type', 'amount')
    for transaction_type, amount in rows.iterator():
        effects = WalletTransaction.BALANCE_EFFECTS[transaction_type]
        for field, sign in zip(BALANCE_FIELDS, effects):
            totals[field] += sign * amount

    return totals


def reconcile(wallet: Wallet) -> Dict[str, Dict[str, str]]:
    """
    Compare stored balances against the replayed log.

    Returns:
        {field: {'stored': ..., 'replayed': ...}} for every field that drifted;
        empty when the wallet is consistent
    """
    replayed = replay(wallet)
    drift = {}
    for field in BALANCE_FIELDS:
        stored = getattr(wallet, field)
        if stored != replayed[field]:
            drift[field] = {'stored': str(stored), 'replayed': str(replayed[field])}

    if drift:
        logger.error(f'Wallet {wallet.pk} drifted from its ledger: {drift}')
    return drift
