"""
Read-only dict projections of orders, wallets and withdrawals for JSON responses
"""

from .services.utils import mask_sensitive_info


def _iso(value):
    return value.isoformat() if value else None


def serialize_order_item(item):
    return {
        'product_id': item.product_id,
        'product_title': item.product_title,
        'seller_id': item.seller_id,
        'quantity': item.quantity,
        'unit_price': str(item.unit_price),
        'line_total': str(item.line_total),
        'gift_packaging': item.gift_packaging,
        'customizations': item.customizations,
    }


def serialize_order(order):
    payment = getattr(order, 'payment', None) if order.payment_method == 'online' else None
    return {
        'order_id': str(order.order_id),
        'buyer_id': order.buyer_id,
        'seller_ids': order.seller_ids,
        'status': order.status,
        'payment_method': order.payment_method,
        'payment_status': order.payment_status,
        'address': order.address_snapshot,
        'items': [serialize_order_item(item) for item in order.items.all()],
        'subtotal': str(order.subtotal),
        'gift_packaging_fee': str(order.gift_packaging_fee),
        'delivery_fee': str(order.delivery_fee),
        'cod_fee': str(order.cod_fee),
        'total_amount': str(order.total_amount),
        'gateway_order_id': payment.gateway_order_id if payment else None,
        'shipment': {
            'shipment_id': order.shipment_id,
            'awb_code': order.awb_code,
            'courier_name': order.courier_name,
            'status': order.shipment_status,
        },
        'created_at': _iso(order.created_at),
        'confirmed_at': _iso(order.confirmed_at),
        'dispatched_at': _iso(order.dispatched_at),
        'delivered_at': _iso(order.delivered_at),
        'cancelled_at': _iso(order.cancelled_at),
    }


def serialize_wallet(wallet):
    return {
        'available_balance': str(wallet.available_balance),
        'pending_balance': str(wallet.pending_balance),
        'total_earned': str(wallet.total_earned),
        'total_withdrawn': str(wallet.total_withdrawn),
        'updated_at': _iso(wallet.updated_at),
    }


def serialize_transaction(entry):
    return {
        'transaction_id': str(entry.transaction_id),
        'type': entry.transaction_type,
        'amount': str(entry.amount),
        'status': entry.status,
        'description': entry.description,
        'order_id': str(entry.order.order_id) if entry.order_id else None,
        'withdrawal_id': str(entry.withdrawal.withdrawal_id) if entry.withdrawal_id else None,
        'balance_before': str(entry.balance_before),
        'balance_after': str(entry.balance_after),
        'pending_before': str(entry.pending_before),
        'pending_after': str(entry.pending_after),
        'created_at': _iso(entry.created_at),
    }


def serialize_withdrawal(withdrawal):
    bank = withdrawal.bank_details or {}
    return {
        'withdrawal_id': str(withdrawal.withdrawal_id),
        'reference': withdrawal.reference,
        'amount': str(withdrawal.amount),
        'status': withdrawal.status,
        'bank_details': {
            'account_number': mask_sensitive_info(bank.get('account_number', '')),
            'ifsc_code': bank.get('ifsc_code', ''),
            'account_holder_name': bank.get('account_holder_name', ''),
        },
        'failure_reason': withdrawal.failure_reason,
        'requested_at': _iso(withdrawal.requested_at),
        'processed_at': _iso(withdrawal.processed_at),
    }
