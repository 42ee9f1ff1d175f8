from decimal import Decimal
from unittest import mock

import pytest
import requests

from apps.sellers.models import Order, PaymentRecord
from apps.sellers.services import orders as order_service
from apps.sellers.services import payments as payment_service
from apps.sellers.services.exceptions import (
    IllegalState, OrderValidationError, PaymentSignatureError, PermissionDeniedError
)
from apps.sellers.services.razorpay import RazorpayService
from tests.helpers import checkout_signature, refreshed

pytestmark = pytest.mark.django_db


@pytest.fixture
def online_order(make_product, place_order):
    """Online order totalling 490 (450 of goods + 40 delivery)"""
    return place_order([(make_product('150.00'), 3)], payment_method='online')


@pytest.fixture
def intent(online_order, buyer):
    return payment_service.create_intent(online_order.order_id, Decimal('490.00'), buyer)


class TestCreateIntent:

    def test_opens_gateway_order(self, online_order, intent):
        assert intent['gateway_order_id'].startswith('order_mock_')
        assert intent['amount'] == '490.00'
        assert intent['currency'] == 'INR'

        record = PaymentRecord.objects.get(order=online_order)
        assert record.gateway_order_id == intent['gateway_order_id']
        assert record.verified is False
        assert refreshed(online_order).payment_status == Order.PAYMENT_UNPAID

    def test_repeat_call_reuses_gateway_order(self, online_order, intent, buyer):
        again = payment_service.create_intent(online_order.order_id, Decimal('490.00'), buyer)

        assert again['gateway_order_id'] == intent['gateway_order_id']
        assert PaymentRecord.objects.count() == 1

    def test_amount_must_match_order_total(self, online_order, buyer):
        with pytest.raises(OrderValidationError) as exc:
            payment_service.create_intent(online_order.order_id, Decimal('460.00'), buyer)

        assert exc.value.code == 'total_mismatch'
        assert not PaymentRecord.objects.exists()

    def test_cod_orders_are_not_paid_online(self, cod_order_1000, buyer):
        with pytest.raises(IllegalState):
            payment_service.create_intent(cod_order_1000.order_id, Decimal('1000.00'), buyer)

    def test_only_the_buyer_can_pay(self, online_order, other_buyer):
        with pytest.raises(PermissionDeniedError):
            payment_service.create_intent(online_order.order_id, Decimal('490.00'), other_buyer)


class TestVerifyPayment:

    def test_valid_signature_marks_paid(self, online_order, intent):
        result = payment_service.verify_payment(
            online_order.order_id,
            intent['gateway_order_id'],
            'pay_29QQoUBi66xm2f',
            checkout_signature(intent['gateway_order_id'], 'pay_29QQoUBi66xm2f'),
        )

        assert result['ok'] is True
        assert result['already_verified'] is False
        assert refreshed(online_order).payment_status == Order.PAYMENT_PAID
        assert PaymentRecord.objects.get(order=online_order).gateway_payment_id == 'pay_29QQoUBi66xm2f'

    def test_repeat_verification_is_idempotent(self, online_order, intent):
        args = (
            online_order.order_id,
            intent['gateway_order_id'],
            'pay_29QQoUBi66xm2f',
            checkout_signature(intent['gateway_order_id'], 'pay_29QQoUBi66xm2f'),
        )
        payment_service.verify_payment(*args)
        updated_at = refreshed(online_order).updated_at

        result = payment_service.verify_payment(*args)

        assert result['already_verified'] is True
        assert refreshed(online_order).updated_at == updated_at

    def test_other_payment_after_verification_is_illegal(self, online_order, intent):
        payment_service.verify_payment(
            online_order.order_id, intent['gateway_order_id'], 'pay_first',
            checkout_signature(intent['gateway_order_id'], 'pay_first'),
        )

        with pytest.raises(IllegalState):
            payment_service.verify_payment(
                online_order.order_id, intent['gateway_order_id'], 'pay_second',
                checkout_signature(intent['gateway_order_id'], 'pay_second'),
            )

    def test_bad_signature_keeps_order_unpaid(self, make_product, place_order, buyer):
        order = place_order([(make_product('600.00'), 1)], payment_method='online')
        intent = payment_service.create_intent(order.order_id, Decimal('600.00'), buyer)

        with pytest.raises(PaymentSignatureError) as exc:
            payment_service.verify_payment(
                order.order_id, intent['gateway_order_id'], 'pay_29QQoUBi66xm2f', 'deadbeef'
            )

        assert exc.value.code == 'invalid_signature'
        record = PaymentRecord.objects.get(order=order)
        assert record.failed_attempts == 1
        assert record.verified is False
        assert refreshed(order).payment_status == Order.PAYMENT_UNPAID

    def test_signature_for_another_gateway_order_is_rejected(self, online_order, intent):
        with pytest.raises(PaymentSignatureError):
            payment_service.verify_payment(
                online_order.order_id, 'order_someoneelse', 'pay_1',
                checkout_signature('order_someoneelse', 'pay_1'),
            )

    def test_paid_order_can_be_confirmed(self, online_order, intent, seller):
        payment_service.verify_payment(
            online_order.order_id, intent['gateway_order_id'], 'pay_1',
            checkout_signature(intent['gateway_order_id'], 'pay_1'),
        )

        order_service.confirm_order(online_order.order_id, seller)

        assert refreshed(seller.wallet).pending_balance == Decimal('465.50')

    def test_paid_order_rejects_new_intent(self, online_order, intent, buyer):
        payment_service.verify_payment(
            online_order.order_id, intent['gateway_order_id'], 'pay_1',
            checkout_signature(intent['gateway_order_id'], 'pay_1'),
        )

        with pytest.raises(IllegalState):
            payment_service.create_intent(online_order.order_id, Decimal('490.00'), buyer)


class TestRazorpayService:

    @pytest.fixture
    def live_service(self, settings):
        settings.USE_MOCK_RAZORPAY = False
        settings.RAZORPAY_KEY_ID = 'rzp_test_key'
        settings.RAZORPAY_KEY_SECRET = 'rzp_test_secret'
        return RazorpayService()

    def test_sends_amount_in_paise(self, live_service):
        response = mock.Mock()
        response.json.return_value = {
            'id': 'order_EKwxwAgItmmXdp', 'amount': 49000, 'currency': 'INR',
            'receipt': 'rcpt_1', 'status': 'created',
        }

        with mock.patch('apps.sellers.services.razorpay.requests.post', return_value=response) as post:
            success, data = live_service.create_order(Decimal('490.00'), 'rcpt_1')

        assert success is True
        assert data['id'] == 'order_EKwxwAgItmmXdp'
        assert data['amount'] == Decimal('490.00')
        assert post.call_args.kwargs['json']['amount'] == 49000
        assert post.call_args.kwargs['auth'] == ('rzp_test_key', 'rzp_test_secret')

    def test_timeout_is_reported_not_raised(self, live_service):
        with mock.patch(
            'apps.sellers.services.razorpay.requests.post',
            side_effect=requests.exceptions.Timeout
        ):
            success, data = live_service.create_order(Decimal('490.00'), 'rcpt_1')

        assert success is False
        assert 'timeout' in data['error']

    def test_falls_back_to_mock_without_keys(self, settings):
        settings.USE_MOCK_RAZORPAY = False
        settings.RAZORPAY_KEY_ID = ''

        assert RazorpayService().use_mock is True

    def test_signature_round_trip(self, live_service):
        signature = live_service.generate_signature('order_1', 'pay_1')

        assert live_service.verify_payment_signature('order_1', 'pay_1', signature)
        assert not live_service.verify_payment_signature('order_1', 'pay_2', signature)
