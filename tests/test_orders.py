from decimal import Decimal

import pytest

from apps.sellers.models import Order, PlatformEarning
from apps.sellers.services import orders as order_service
from apps.sellers.services.exceptions import (
    OrderValidationError, ProductNotFound, InsufficientStock,
    IllegalState, PaymentNotReady, PermissionDeniedError
)
from tests.helpers import refreshed

pytestmark = pytest.mark.django_db


# ==========================================
# FEES & TOTALS
# ==========================================

class TestCalculateFees:

    def test_below_threshold_cod(self):
        fees = order_service.calculate_fees(Decimal('450'), 0, 'cod')

        assert fees['delivery_fee'] == Decimal('40.00')
        assert fees['cod_fee'] == Decimal('10.00')
        assert fees['gift_packaging_fee'] == Decimal('0.00')
        assert fees['total_amount'] == Decimal('500.00')

    def test_below_threshold_online(self):
        fees = order_service.calculate_fees(Decimal('450'), 0, 'online')

        assert fees['cod_fee'] == Decimal('0.00')
        assert fees['total_amount'] == Decimal('490.00')

    def test_free_delivery_at_threshold(self):
        fees = order_service.calculate_fees(Decimal('500'), 0, 'online')

        assert fees['delivery_fee'] == Decimal('0.00')
        assert fees['total_amount'] == Decimal('500.00')

    def test_gift_packaging_per_flagged_line(self):
        fees = order_service.calculate_fees(Decimal('600'), 2, 'online')

        assert fees['gift_packaging_fee'] == Decimal('100.00')
        assert fees['total_amount'] == Decimal('700.00')


class TestCreateOrder:

    def test_cod_order_below_threshold(self, make_product, place_order):
        order = place_order([(make_product('150.00'), 3)], payment_method='cod')

        assert order.status == Order.STATUS_PENDING
        assert order.payment_status == Order.PAYMENT_COD_PENDING
        assert order.subtotal == Decimal('450.00')
        assert order.total_amount == Decimal('500.00')

    def test_online_order_starts_unpaid(self, make_product, place_order):
        order = place_order([(make_product('150.00'), 3)], payment_method='online')

        assert order.payment_status == Order.PAYMENT_UNPAID
        assert order.total_amount == Decimal('490.00')

    def test_total_matches_items_and_fees(self, make_product, place_order, second_seller):
        mug = make_product('199.50', stock=5)
        card = make_product('49.99', stock=5, owner=second_seller, title='Greeting card')

        order = place_order([(mug, 2, True), (card, 1)], payment_method='cod')

        items_total = sum(item.unit_price * item.quantity for item in order.items.all())
        assert order.total_amount == (
            items_total + order.gift_packaging_fee + order.delivery_fee + order.cod_fee
        )
        assert order.gift_packaging_fee == Decimal('50.00')
        assert order.seller_ids == sorted([mug.seller_id, second_seller.pk])

    def test_captures_price_address_and_customizations(self, buyer, address, make_product):
        product = make_product('300.00')
        items = [{
            'product_id': product.pk,
            'quantity': 1,
            'gift_packaging': False,
            'customizations': [{'question': 'Name on mug', 'answer': 'Riya'}],
        }]

        order = order_service.create_order(buyer, items, address, 'online')
        product.price = Decimal('999.00')
        product.save()
        address['city'] = 'Mysuru'

        item = order.items.get()
        assert item.unit_price == Decimal('300.00')
        assert item.customizations == [{'question': 'Name on mug', 'answer': 'Riya'}]
        assert refreshed(order).address_snapshot['city'] == 'Bengaluru'

    def test_reserves_stock(self, make_product, place_order):
        product = make_product('100.00', stock=5)

        place_order([(product, 2), (product, 1)])

        assert refreshed(product).stock == 2

    def test_rejects_empty_items(self, buyer, address):
        with pytest.raises(OrderValidationError) as exc:
            order_service.create_order(buyer, [], address, 'cod')
        assert exc.value.code == 'invalid_items'

    def test_rejects_zero_quantity(self, buyer, address, make_product):
        items = [{'product_id': make_product('100.00').pk, 'quantity': 0}]

        with pytest.raises(OrderValidationError) as exc:
            order_service.create_order(buyer, items, address, 'cod')
        assert exc.value.code == 'invalid_items'

    def test_requires_address(self, buyer, make_product):
        items = [{'product_id': make_product('100.00').pk, 'quantity': 1}]

        with pytest.raises(OrderValidationError) as exc:
            order_service.create_order(buyer, items, {}, 'cod')
        assert exc.value.code == 'address_required'

    def test_unknown_product(self, buyer, address):
        with pytest.raises(ProductNotFound):
            order_service.create_order(buyer, [{'product_id': 9999, 'quantity': 1}], address, 'cod')

    def test_insufficient_stock_leaves_nothing_behind(self, make_product, place_order):
        product = make_product('100.00', stock=1)

        with pytest.raises(InsufficientStock) as exc:
            place_order([(product, 2)])

        assert exc.value.code == 'insufficient_stock'
        assert refreshed(product).stock == 1
        assert Order.objects.count() == 0

    def test_client_total_must_match(self, make_product, place_order):
        product = make_product('150.00', stock=5)

        with pytest.raises(OrderValidationError) as exc:
            place_order([(product, 3)], payment_method='online', expected_total=Decimal('460.00'))

        assert exc.value.code == 'total_mismatch'
        assert exc.value.details['expected'] == '490.00'

    def test_new_order_notifies_sellers_after_commit(
        self, make_product, place_order, django_capture_on_commit_callbacks
    ):
        with django_capture_on_commit_callbacks(execute=True) as callbacks:
            place_order([(make_product('100.00'), 1)])

        assert len(callbacks) == 1


# ==========================================
# STATE MACHINE
# ==========================================

class TestConfirmOrder:

    def test_cod_confirmation_accrues_seller_share(self, cod_order_1000, seller):
        order_service.confirm_order(cod_order_1000.order_id, seller)

        wallet = refreshed(seller.wallet)
        assert refreshed(cod_order_1000).status == Order.STATUS_CONFIRMED
        assert wallet.pending_balance == Decimal('950.00')
        assert wallet.total_earned == Decimal('950.00')
        assert wallet.available_balance == Decimal('0.00')
        assert refreshed(cod_order_1000).commission_amount == Decimal('50.00')

    def test_records_platform_earning(self, cod_order_1000, seller):
        order_service.confirm_order(cod_order_1000.order_id, seller)

        earning = PlatformEarning.objects.get(order=cod_order_1000)
        assert earning.commission_amount == Decimal('50.00')
        assert earning.seller_amount == Decimal('950.00')
        assert earning.status == 'earned'

    def test_unpaid_online_order_is_not_ready(self, make_product, place_order, seller):
        order = place_order([(make_product('600.00'), 1)], payment_method='online')

        with pytest.raises(PaymentNotReady) as exc:
            order_service.confirm_order(order.order_id, seller)

        assert exc.value.code == 'payment_not_ready'
        assert refreshed(order).status == Order.STATUS_PENDING

    def test_only_sellers_on_the_order(self, cod_order_1000, second_seller, buyer):
        for actor in (second_seller, buyer):
            with pytest.raises(PermissionDeniedError):
                order_service.confirm_order(cod_order_1000.order_id, actor)

    def test_confirming_twice_is_illegal(self, cod_order_1000, seller):
        order_service.confirm_order(cod_order_1000.order_id, seller)

        with pytest.raises(IllegalState):
            order_service.confirm_order(cod_order_1000.order_id, seller)

        assert refreshed(seller.wallet).pending_balance == Decimal('950.00')


class TestDispatchAndDelivery:

    def test_dispatch_pending_order_is_illegal(self, cod_order_1000, seller):
        with pytest.raises(IllegalState) as exc:
            order_service.dispatch_order(cod_order_1000.order_id, seller)
        assert exc.value.code == 'illegal_state'

    def test_delivery_requires_dispatch(self, cod_order_1000, seller):
        order_service.confirm_order(cod_order_1000.order_id, seller)

        with pytest.raises(IllegalState):
            order_service.mark_delivered(cod_order_1000.order_id)

    def test_delivery_settles_and_collects_cod(self, delivered_cod_order, seller):
        wallet = refreshed(seller.wallet)

        assert delivered_cod_order.status == Order.STATUS_DELIVERED
        assert delivered_cod_order.payment_status == Order.PAYMENT_COD_COLLECTED
        assert wallet.pending_balance == Decimal('0.00')
        assert wallet.available_balance == Decimal('950.00')
        assert wallet.total_earned == Decimal('950.00')

    def test_repeat_delivery_is_a_noop(self, delivered_cod_order, seller):
        order_service.mark_delivered(delivered_cod_order.order_id)

        wallet = refreshed(seller.wallet)
        assert wallet.available_balance == Decimal('950.00')
        assert wallet.transactions.count() == 2

    def test_late_courier_status_leaves_delivered_order_alone(self, delivered_cod_order):
        order_service.record_shipment_status(delivered_cod_order.order_id, 'In Transit')

        assert refreshed(delivered_cod_order).shipment_status == 'Delivered'

    def test_courier_status_ignored_on_cancelled_order(self, cod_order_1000, buyer):
        order_service.cancel_order(cod_order_1000.order_id, buyer)

        order_service.record_shipment_status(
            cod_order_1000.order_id, 'Pickup Scheduled', shipment={'awb_code': 'AWB1'}
        )

        order = refreshed(cod_order_1000)
        assert order.shipment_status == ''
        assert order.awb_code == ''

    def test_long_courier_fields_are_cut_to_fit(self, cod_order_1000, seller):
        order_service.confirm_order(cod_order_1000.order_id, seller)
        order_service.dispatch_order(cod_order_1000.order_id, seller)

        order_service.record_shipment_status(
            cod_order_1000.order_id, 'Out For Delivery ' * 5, shipment={'awb_code': '9' * 150}
        )
        order_service.mark_delivered(cod_order_1000.order_id, shipment={'courier_name': 'X' * 150})

        order = refreshed(cod_order_1000)
        assert order.awb_code == '9' * 100
        assert order.courier_name == 'X' * 100
        assert order.status == Order.STATUS_DELIVERED

    def test_status_api_does_not_accept_delivered(self, cod_order_1000, seller):
        with pytest.raises(OrderValidationError) as exc:
            order_service.update_order_status(cod_order_1000.order_id, 'delivered', seller)
        assert exc.value.code == 'invalid_status'


class TestCancelOrder:

    def test_cancel_pending_restores_stock(self, make_product, place_order, buyer):
        product = make_product('100.00', stock=4)
        order = place_order([(product, 3)])

        order_service.cancel_order(order.order_id, buyer)

        assert refreshed(order).status == Order.STATUS_CANCELLED
        assert refreshed(product).stock == 4

    def test_cancel_confirmed_reverses_accrual(self, cod_order_1000, seller, buyer):
        order_service.confirm_order(cod_order_1000.order_id, seller)

        order_service.cancel_order(cod_order_1000.order_id, buyer)

        wallet = refreshed(seller.wallet)
        assert wallet.pending_balance == Decimal('0.00')
        assert wallet.total_earned == Decimal('0.00')
        assert PlatformEarning.objects.get(order=cod_order_1000).status == 'reversed'

    def test_cancel_after_dispatch_is_illegal(self, cod_order_1000, seller, buyer):
        order_service.confirm_order(cod_order_1000.order_id, seller)
        order_service.dispatch_order(cod_order_1000.order_id, seller)

        with pytest.raises(IllegalState):
            order_service.cancel_order(cod_order_1000.order_id, buyer)

        assert refreshed(seller.wallet).pending_balance == Decimal('950.00')

    def test_strangers_cannot_cancel(self, cod_order_1000, other_buyer):
        with pytest.raises(PermissionDeniedError):
            order_service.cancel_order(cod_order_1000.order_id, other_buyer)
