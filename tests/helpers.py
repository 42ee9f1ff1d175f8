import hashlib
import hmac

from django.conf import settings


def checkout_signature(gateway_order_id, gateway_payment_id):
    """Signature Razorpay Checkout hands back for a successful payment"""
    message = f'{gateway_order_id}|{gateway_payment_id}'.encode()
    return hmac.new(settings.RAZORPAY_KEY_SECRET.encode(), message, hashlib.sha256).hexdigest()


def courier_signature(body):
    return hmac.new(settings.SHIPROCKET_WEBHOOK_SECRET.encode(), body, hashlib.sha256).hexdigest()


def refreshed(instance):
    instance.refresh_from_db()
    return instance


BANK_DETAILS = {
    'account_number': '123456789012',
    'ifsc_code': 'HDFC0001234',
    'account_holder_name': 'Asha Crafts',
}
