"""
Withdrawal Processor
Seller payout requests and their admin resolution
"""

import logging
from decimal import Decimal
from typing import Dict, Optional

from django.db import transaction
from django.utils import timezone

from core.utils.money import quantize, marketplace_setting
from ..models import WithdrawalRequest, WalletTransaction
from . import wallet as wallet_service
from .exceptions import (
    OrderValidationError, InsufficientBalance, IllegalState,
    WithdrawalNotFound, PermissionDeniedError
)
from .notifications import notification_service
from .utils import generate_reference

logger = logging.getLogger(__name__)

BANK_DETAIL_FIELDS = ('account_number', 'ifsc_code', 'account_holder_name')


def request_withdrawal(seller, amount: Decimal, bank_details: Dict) -> WithdrawalRequest:
    """
    Hold funds from the available balance and open a pending withdrawal.

    The balance check and the hold happen under the wallet row lock, so two
    requests that together exceed the balance can never both succeed.

    Args:
        seller: Requesting seller
        amount: Amount in rupees
        bank_details: account_number, ifsc_code, account_holder_name

    Raises:
        OrderValidationError: invalid_amount, amount_below_minimum, invalid_bank_details
        InsufficientBalance: Amount exceeds the available balance
    """
    amount = quantize(amount)
    if amount <= 0:
        raise OrderValidationError('Withdrawal amount must be positive', code='invalid_amount')

    missing = [field for field in BANK_DETAIL_FIELDS if not (bank_details or {}).get(field)]
    if missing:
        raise OrderValidationError(
            f'Missing bank details: {", ".join(missing)}',
            code='invalid_bank_details'
        )

    minimum = marketplace_setting('MIN_WITHDRAWAL_AMOUNT')

    with transaction.atomic():
        wallet = wallet_service.get_or_create_wallet(seller.pk, lock=True)

        if amount > wallet.available_balance:
            raise InsufficientBalance(
                f'Available balance is ₹{wallet.available_balance}',
                details={'available_balance': str(wallet.available_balance)}
            )
        if amount < minimum:
            raise OrderValidationError(
                f'Minimum withdrawal amount is ₹{minimum}',
                code='amount_below_minimum'
            )

        withdrawal = WithdrawalRequest.objects.create(
            seller=seller,
            wallet=wallet,
            amount=amount,
            bank_details={field: str(bank_details[field]) for field in BANK_DETAIL_FIELDS},
            reference=generate_reference('WDR'),
        )
        wallet_service.post_entry(
            wallet.pk,
            WalletTransaction.DEBIT_WITHDRAWAL_HOLD,
            amount,
            withdrawal=withdrawal,
            description=f'Withdrawal {withdrawal.reference} requested',
        )

    logger.info(f'Withdrawal {withdrawal.reference} of ₹{amount} requested by {seller.email}')
    return withdrawal


def resolve_withdrawal(
    withdrawal_id,
    outcome: str,
    actor,
    failure_reason: Optional[str] = None,
) -> WithdrawalRequest:
    """
    Admin decision on a withdrawal.

    - approved: pending -> approved, no balance change
    - completed: approved -> completed, held amount recorded as withdrawn
    - rejected: pending or approved -> rejected, hold released back to available

    Completed and rejected withdrawals are final.
    """
    if not getattr(actor, 'is_staff', False):
        raise PermissionDeniedError('Only staff can resolve withdrawals')

    valid_outcomes = (
        WithdrawalRequest.STATUS_APPROVED,
        WithdrawalRequest.STATUS_REJECTED,
        WithdrawalRequest.STATUS_COMPLETED,
    )
    if outcome not in valid_outcomes:
        raise OrderValidationError(f'Unknown outcome: {outcome}', code='invalid_outcome')

    with transaction.atomic():
        try:
            withdrawal = WithdrawalRequest.objects.select_for_update().get(withdrawal_id=withdrawal_id)
        except WithdrawalRequest.DoesNotExist:
            raise WithdrawalNotFound(f'Withdrawal {withdrawal_id} not found')

        if not withdrawal.can_transition_to(outcome):
            raise IllegalState(
                f'Cannot move withdrawal from {withdrawal.status} to {outcome}',
                details={'current_status': withdrawal.status}
            )

        if outcome == WithdrawalRequest.STATUS_REJECTED:
            withdrawal.failure_reason = failure_reason or 'Rejected by admin'
            wallet_service.post_entry(
                withdrawal.wallet_id,
                WalletTransaction.CREDIT_WITHDRAWAL_REVERSAL,
                withdrawal.amount,
                withdrawal=withdrawal,
                description=f'Withdrawal {withdrawal.reference} rejected',
            )
        elif outcome == WithdrawalRequest.STATUS_COMPLETED:
            wallet_service.post_entry(
                withdrawal.wallet_id,
                WalletTransaction.WITHDRAWAL_PAYOUT,
                withdrawal.amount,
                withdrawal=withdrawal,
                description=f'Withdrawal {withdrawal.reference} paid out',
            )

        withdrawal.status = outcome
        withdrawal.processed_at = timezone.now()
        withdrawal.processed_by = actor
        withdrawal.save()

        transaction.on_commit(lambda: notification_service.send_withdrawal_update(withdrawal))

    logger.info(f'Withdrawal {withdrawal.reference} {outcome} by {actor.email}')
    return withdrawal
