"""Money helpers shared across the marketplace.

- Amounts are Decimal rupees with two places; the gateway speaks integer paise.
- marketplace_setting reads a rule from settings.MARKETPLACE with a fallback.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Any, Tuple

from django.conf import settings

TWO_PLACES = Decimal('0.01')

DEFAULTS = {
    'CURRENCY': 'INR',
    'COMMISSION_RATE': Decimal('5.00'),
    'FREE_DELIVERY_THRESHOLD': Decimal('500.00'),
    'DELIVERY_FEE': Decimal('40.00'),
    'GIFT_PACKAGING_FEE': Decimal('50.00'),
    'COD_FEE': Decimal('10.00'),
    'MIN_WITHDRAWAL_AMOUNT': Decimal('500.00'),
    'LEDGER_MAX_RETRIES': 3,
}


def marketplace_setting(name: str) -> Any:
    rules = getattr(settings, 'MARKETPLACE', {})
    return rules.get(name, DEFAULTS[name])


def quantize(amount) -> Decimal:
    """
    Round an amount to paise precision (half up).
    """
    return Decimal(amount).quantize(TWO_PLACES, rounding=ROUND_HALF_UP)


def rupees_to_paise(amount: Decimal) -> int:
    """
    Convert rupees to paise (the gateway's minor unit).
    1 Rupee = 100 Paise
    """
    return int((quantize(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def paise_to_rupees(paise: int) -> Decimal:
    return quantize(Decimal(paise) / 100)


def split_commission(amount: Decimal, commission_rate: Decimal) -> Tuple[Decimal, Decimal]:
    """
    Split an amount into platform commission and seller share.

    Args:
        amount: Gross amount attributable to the seller
        commission_rate: Commission percentage (e.g., 5.00 for 5%)

    Returns:
        Tuple of (commission_amount, seller_amount); the two always sum to amount
    """
    amount = quantize(amount)
    seller_amount = quantize(amount * (Decimal('100') - Decimal(commission_rate)) / Decimal('100'))
    commission = amount - seller_amount
    return commission, seller_amount
