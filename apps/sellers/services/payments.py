"""
Payment Service
Payment intents and checkout verification for online orders
"""

import logging
from decimal import Decimal
from typing import Dict

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.utils.money import quantize, marketplace_setting
from ..models import Order, PaymentRecord
from .exceptions import (
    OrderValidationError, OrderNotFound, IllegalState,
    PermissionDeniedError, PaymentSignatureError, PaymentGatewayError
)
from .razorpay import razorpay_service

logger = logging.getLogger(__name__)


def _intent_payload(record: PaymentRecord) -> Dict:
    return {
        'intent_id': str(record.intent_id),
        'gateway_order_id': record.gateway_order_id,
        'amount': str(record.amount),
        'currency': record.currency,
        'receipt': record.receipt,
        'key_id': razorpay_service.key_id,
    }


def create_intent(order_id, amount: Decimal, actor) -> Dict:
    """
    Open (or reuse) a gateway order for an unpaid online order.

    Only the gateway order id is persisted. A repeated call before payment
    returns the existing gateway order.

    Raises:
        OrderValidationError: total_mismatch when amount differs from the order total
        IllegalState: COD order, cancelled order or already paid
        PaymentGatewayError: Gateway refused to create the order
    """
    with transaction.atomic():
        try:
            order = Order.objects.select_for_update().get(order_id=order_id)
        except Order.DoesNotExist:
            raise OrderNotFound(f'Order {order_id} not found')

        if order.buyer_id != actor.pk:
            raise PermissionDeniedError('Only the buyer can pay for this order')
        if order.payment_method != Order.PAYMENT_ONLINE:
            raise IllegalState('Cash on delivery orders are not paid online')
        if order.status == Order.STATUS_CANCELLED:
            raise IllegalState('Order is cancelled')
        if order.payment_status == Order.PAYMENT_PAID:
            raise IllegalState('Order is already paid')

        if quantize(amount) != order.total_amount:
            raise OrderValidationError(
                'Payment amount does not match the order total',
                code='total_mismatch',
                details={'expected': str(order.total_amount)}
            )

        existing = PaymentRecord.objects.filter(order=order).first()
        if existing is not None:
            logger.info(f'Reusing gateway order {existing.gateway_order_id} for order {order.order_id}')
            return _intent_payload(existing)

        currency = marketplace_setting('CURRENCY')
        receipt = f'rcpt_{order.order_id.hex[:24]}'
        success, data = razorpay_service.create_order(
            amount=order.total_amount,
            receipt=receipt,
            currency=currency,
            notes={'order_id': str(order.order_id)}
        )
        if not success:
            raise PaymentGatewayError(data.get('error', 'Could not create payment'))

        record = PaymentRecord.objects.create(
            order=order,
            gateway_order_id=data['id'],
            receipt=receipt,
            amount=order.total_amount,
            currency=currency,
        )

    logger.info(f'Payment intent {record.intent_id} created for order {order.order_id}')
    return _intent_payload(record)


def verify_payment(order_id, gateway_order_id: str, gateway_payment_id: str, signature: str) -> Dict:
    """
    Check the gateway signature and mark the order paid.

    Safe to call repeatedly: a payment already verified with the same payment
    id returns ok without touching anything.

    Returns:
        {'ok': True, 'order_id': ..., 'payment_status': 'paid', 'already_verified': bool}

    Raises:
        PaymentSignatureError: Signature or gateway order mismatch; the order stays unpaid
        IllegalState: Order already paid by a different payment
    """
    signature_failed = False

    with transaction.atomic():
        try:
            record = PaymentRecord.objects.select_for_update().get(order__order_id=order_id)
        except PaymentRecord.DoesNotExist:
            raise OrderNotFound(f'No payment started for order {order_id}')

        valid = (
            record.gateway_order_id == gateway_order_id
            and razorpay_service.verify_payment_signature(gateway_order_id, gateway_payment_id, signature)
        )

        if not valid:
            PaymentRecord.objects.filter(pk=record.pk).update(
                failed_attempts=F('failed_attempts') + 1,
                last_error='signature_mismatch',
                updated_at=timezone.now(),
            )
            signature_failed = True

        elif record.verified:
            if record.gateway_payment_id != gateway_payment_id:
                raise IllegalState('Order is already paid by another payment')
            logger.info(f'Payment {gateway_payment_id} already verified, nothing to do')
            return {
                'ok': True,
                'order_id': str(order_id),
                'payment_status': Order.PAYMENT_PAID,
                'already_verified': True,
            }

        else:
            order = Order.objects.select_for_update().get(pk=record.order_id)

            record.gateway_payment_id = gateway_payment_id
            record.signature = signature
            record.verified = True
            record.verified_at = timezone.now()
            record.last_error = ''
            record.save()

            order.payment_status = Order.PAYMENT_PAID
            order.save(update_fields=['payment_status', 'updated_at'])

            if order.status == Order.STATUS_CANCELLED:
                logger.warning(f'Payment captured for cancelled order {order.order_id}; refund required')

    if signature_failed:
        logger.warning(f'Signature mismatch for order {order_id} (gateway order {gateway_order_id})')
        raise PaymentSignatureError('Payment verification failed. Please retry the payment.')

    logger.info(f'Payment {gateway_payment_id} verified for order {order_id}')
    return {
        'ok': True,
        'order_id': str(order_id),
        'payment_status': Order.PAYMENT_PAID,
        'already_verified': False,
    }
