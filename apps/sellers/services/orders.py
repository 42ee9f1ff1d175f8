"""
Order Manager Service
Checkout, fee calculation and the order status state machine

State machine (forward only):
    pending -> confirmed -> dispatched -> delivered
    pending | confirmed -> cancelled

Each transition locks the order row and checks the persisted status before
applying, so concurrent callers cannot skip or repeat a step.
"""

import logging
from collections import OrderedDict
from decimal import Decimal
from typing import Dict, List, Optional

from django.db import transaction
from django.db.models import F
from django.utils import timezone

from core.utils.money import quantize, marketplace_setting
from ..models import Order, OrderItem, Product
from . import wallet as wallet_service
from .exceptions import (
    OrderValidationError, ProductNotFound, InsufficientStock,
    OrderNotFound, IllegalState, PaymentNotReady, PermissionDeniedError
)
from .notifications import notification_service

logger = logging.getLogger(__name__)


# ==========================================
# FEES
# ==========================================

def calculate_fees(subtotal: Decimal, gift_item_count: int, payment_method: str) -> Dict[str, Decimal]:
    """
    Compute checkout fees and the order total.

    Args:
        subtotal: Sum of unit price x quantity over all items
        gift_item_count: Number of order lines flagged for gift packaging
        payment_method: 'online' or 'cod'

    Returns:
        Dict with subtotal, gift_packaging_fee, delivery_fee, cod_fee, total_amount
    """
    subtotal = quantize(subtotal)

    if subtotal >= marketplace_setting('FREE_DELIVERY_THRESHOLD'):
        delivery_fee = Decimal('0.00')
    else:
        delivery_fee = quantize(marketplace_setting('DELIVERY_FEE'))

    gift_packaging_fee = quantize(marketplace_setting('GIFT_PACKAGING_FEE') * gift_item_count)
    cod_fee = quantize(marketplace_setting('COD_FEE')) if payment_method == Order.PAYMENT_COD else Decimal('0.00')

    return {
        'subtotal': subtotal,
        'gift_packaging_fee': gift_packaging_fee,
        'delivery_fee': delivery_fee,
        'cod_fee': cod_fee,
        'total_amount': subtotal + gift_packaging_fee + delivery_fee + cod_fee,
    }


# ==========================================
# CHECKOUT
# ==========================================

def create_order(
    buyer,
    items: List[Dict],
    address: Dict,
    payment_method: str,
    expected_total: Optional[Decimal] = None,
) -> Order:
    """
    Place an order, reserving stock for every line.

    Args:
        buyer: Buying user
        items: [{'product_id', 'quantity', 'gift_packaging', 'customizations'}]
        address: Delivery address, copied onto the order
        payment_method: 'online' or 'cod'
        expected_total: Total the client displayed; must equal the computed total

    Returns:
        The pending Order

    Raises:
        OrderValidationError: invalid_items, address_required, invalid_payment_method, total_mismatch
        ProductNotFound: A product is unknown or inactive
        InsufficientStock: A product cannot cover the requested quantity
    """
    if not items:
        raise OrderValidationError('Order must contain at least one item', code='invalid_items')

    for item in items:
        quantity = item.get('quantity')
        if not isinstance(quantity, int) or isinstance(quantity, bool) or quantity < 1:
            raise OrderValidationError('Each item needs a quantity of at least 1', code='invalid_items')
        if not item.get('product_id'):
            raise OrderValidationError('Each item needs a product', code='invalid_items')

    if not address:
        raise OrderValidationError('A delivery address is required', code='address_required')

    if payment_method not in (Order.PAYMENT_ONLINE, Order.PAYMENT_COD):
        raise OrderValidationError(f'Unknown payment method: {payment_method}', code='invalid_payment_method')

    # Same product on several lines reserves the combined quantity
    requested = OrderedDict()
    for item in items:
        requested[item['product_id']] = requested.get(item['product_id'], 0) + item['quantity']

    with transaction.atomic():
        products = {
            product.pk: product
            for product in Product.objects.select_for_update()
            .filter(pk__in=list(requested), is_active=True)
            .order_by('pk')
        }

        missing = [product_id for product_id in requested if product_id not in products]
        if missing:
            raise ProductNotFound(
                f'Product {missing[0]} does not exist or is unavailable',
                details={'product_id': missing[0]}
            )

        for product_id, quantity in requested.items():
            product = products[product_id]
            if product.stock < quantity:
                raise InsufficientStock(
                    f'Only {product.stock} of "{product.title}" left in stock',
                    details={'product_id': product_id, 'available': product.stock}
                )

        subtotal = sum(
            (products[item['product_id']].price * item['quantity'] for item in items),
            Decimal('0.00')
        )
        gift_count = sum(1 for item in items if item.get('gift_packaging'))
        fees = calculate_fees(subtotal, gift_count, payment_method)

        if expected_total is not None and quantize(expected_total) != fees['total_amount']:
            raise OrderValidationError(
                'Order total does not match the checkout total',
                code='total_mismatch',
                details={'expected': str(fees['total_amount']), 'received': str(expected_total)}
            )

        order = Order.objects.create(
            buyer=buyer,
            payment_method=payment_method,
            payment_status=(
                Order.PAYMENT_COD_PENDING if payment_method == Order.PAYMENT_COD else Order.PAYMENT_UNPAID
            ),
            address_snapshot=dict(address),
            **fees,
        )

        OrderItem.objects.bulk_create([
            OrderItem(
                order=order,
                product=products[item['product_id']],
                seller_id=products[item['product_id']].seller_id,
                product_title=products[item['product_id']].title,
                quantity=item['quantity'],
                unit_price=products[item['product_id']].price,
                gift_packaging=bool(item.get('gift_packaging')),
                customizations=[dict(pair) for pair in item.get('customizations') or []],
            )
            for item in items
        ])

        for product_id, quantity in requested.items():
            Product.objects.filter(pk=product_id).update(stock=F('stock') - quantity)

        transaction.on_commit(lambda: notification_service.send_new_order(order))

    logger.info(
        f'Order {order.order_id} placed by {buyer.email}: {len(items)} item(s), '
        f'total ₹{order.total_amount} ({payment_method})'
    )
    return order


# ==========================================
# STATUS TRANSITIONS
# ==========================================

def _lock_order(order_id) -> Order:
    try:
        return Order.objects.select_for_update().get(order_id=order_id)
    except Order.DoesNotExist:
        raise OrderNotFound(f'Order {order_id} not found')


def _ensure_transition(order: Order, new_status: str):
    if not order.can_transition_to(new_status):
        raise IllegalState(
            f'Cannot move order from {order.status} to {new_status}',
            details={'current_status': order.status}
        )


def _ensure_seller_on_order(order: Order, actor):
    if actor is None or actor.pk not in order.seller_ids:
        raise PermissionDeniedError('Only a seller on this order can update it')


SHIPMENT_FIELDS = ('shipment_id', 'awb_code', 'courier_name')


def _apply_shipment(order: Order, shipment: Optional[Dict]) -> List[str]:
    """Copy courier identifiers onto the order, cut to the column length"""
    updated = []
    for field in SHIPMENT_FIELDS:
        if shipment and shipment.get(field):
            max_length = Order._meta.get_field(field).max_length
            setattr(order, field, str(shipment[field])[:max_length])
            updated.append(field)
    return updated


def _notify_buyer(order: Order):
    transaction.on_commit(lambda: notification_service.send_order_status_update(order))


def confirm_order(order_id, actor) -> Order:
    """
    Seller accepts the order: pending -> confirmed, then accrue seller shares.

    Raises:
        PaymentNotReady: Online order still unpaid
    """
    with transaction.atomic():
        order = _lock_order(order_id)
        _ensure_seller_on_order(order, actor)
        _ensure_transition(order, Order.STATUS_CONFIRMED)

        if order.payment_status not in (Order.PAYMENT_PAID, Order.PAYMENT_COD_PENDING):
            raise PaymentNotReady('Order cannot be confirmed before payment is received')

        order.status = Order.STATUS_CONFIRMED
        order.confirmed_at = timezone.now()
        order.save(update_fields=['status', 'confirmed_at', 'updated_at'])

        wallet_service.accrue_pending(order)
        _notify_buyer(order)

    logger.info(f'Order {order.order_id} confirmed by {actor.email}')
    return order


def dispatch_order(order_id, actor) -> Order:
    """Seller hands the order to the courier: confirmed -> dispatched"""
    with transaction.atomic():
        order = _lock_order(order_id)
        _ensure_seller_on_order(order, actor)
        _ensure_transition(order, Order.STATUS_DISPATCHED)

        order.status = Order.STATUS_DISPATCHED
        order.dispatched_at = timezone.now()
        order.save(update_fields=['status', 'dispatched_at', 'updated_at'])
        _notify_buyer(order)

    logger.info(f'Order {order.order_id} dispatched by {actor.email}')
    return order


def mark_delivered(order_id, shipment: Optional[Dict] = None) -> Order:
    """
    Courier reports delivery: dispatched -> delivered, then settle seller shares.

    A repeated delivery event for a delivered order is a no-op. COD orders
    become cod_collected.

    Args:
        order_id: Order UUID
        shipment: Optional courier details (shipment_id, awb_code, courier_name)
    """
    with transaction.atomic():
        order = _lock_order(order_id)

        if order.status == Order.STATUS_DELIVERED:
            logger.info(f'Order {order.order_id} already delivered, ignoring repeat event')
            return order

        _ensure_transition(order, Order.STATUS_DELIVERED)

        order.status = Order.STATUS_DELIVERED
        order.delivered_at = timezone.now()
        order.shipment_status = 'Delivered'
        if order.is_cod:
            order.payment_status = Order.PAYMENT_COD_COLLECTED
        _apply_shipment(order, shipment)
        order.save()

        wallet_service.settle(order)
        _notify_buyer(order)

    logger.info(f'Order {order.order_id} delivered and settled')
    return order


def cancel_order(order_id, actor) -> Order:
    """
    Cancel before dispatch, reversing any accrual and restoring stock.

    The buyer, any seller on the order and staff may cancel.
    """
    with transaction.atomic():
        order = _lock_order(order_id)

        is_party = actor is not None and (
            actor.is_staff or actor.pk == order.buyer_id or actor.pk in order.seller_ids
        )
        if not is_party:
            raise PermissionDeniedError('You cannot cancel this order')

        _ensure_transition(order, Order.STATUS_CANCELLED)

        wallet_service.reverse(order)

        for item in order.items.order_by('product_id'):
            Product.objects.filter(pk=item.product_id).update(stock=F('stock') + item.quantity)

        order.status = Order.STATUS_CANCELLED
        order.cancelled_at = timezone.now()
        order.save(update_fields=['status', 'cancelled_at', 'updated_at'])
        _notify_buyer(order)

    if order.payment_status == Order.PAYMENT_PAID:
        logger.warning(f'Order {order.order_id} cancelled after online payment; refund must be issued manually')

    logger.info(f'Order {order.order_id} cancelled by {actor.email}')
    return order


def update_order_status(order_id, new_status: str, actor) -> Order:
    """
    Apply a status change requested through the API.

    Delivery is not accepted here; it only arrives from the courier webhook.
    """
    handlers = {
        Order.STATUS_CONFIRMED: confirm_order,
        Order.STATUS_DISPATCHED: dispatch_order,
        Order.STATUS_CANCELLED: cancel_order,
    }
    handler = handlers.get(new_status)
    if handler is None:
        raise OrderValidationError(f'Status "{new_status}" cannot be set here', code='invalid_status')
    return handler(order_id, actor)


def record_shipment_status(order_id, courier_status: str, shipment: Optional[Dict] = None) -> Order:
    """
    Store a non-delivery courier status on the order without changing its state.

    Delivered and cancelled orders keep their final tracking details; late
    courier events for them are ignored.
    """
    with transaction.atomic():
        order = _lock_order(order_id)

        if order.status in (Order.STATUS_DELIVERED, Order.STATUS_CANCELLED):
            logger.info(f'Order {order.order_id} is {order.status}, ignoring courier status {courier_status}')
            return order

        order.shipment_status = courier_status[:Order._meta.get_field('shipment_status').max_length]
        update_fields = ['shipment_status', 'updated_at'] + _apply_shipment(order, shipment)
        order.save(update_fields=update_fields)

    logger.info(f'Order {order.order_id} courier status: {courier_status}')
    return order
