"""
Shared fixtures for the marketplace test suite: users, catalog, addresses,
orders at each lifecycle stage and funded seller wallets.
"""

from decimal import Decimal

import pytest
from django.contrib.auth import get_user_model
from django.db import transaction

from apps.sellers.models import Order, Product, Wallet, WalletTransaction
from apps.sellers.services import orders as order_service
from apps.sellers.services import wallet as wallet_service

User = get_user_model()


@pytest.fixture
def address():
    return {
        'full_name': 'Riya Sharma',
        'phone': '9876543210',
        'address_line1': '12 MG Road',
        'city': 'Bengaluru',
        'state': 'Karnataka',
        'pincode': '560001',
    }


@pytest.fixture
def buyer(db):
    return User.objects.create_user(email='buyer@example.com', password='pass1234', role='buyer')


@pytest.fixture
def other_buyer(db):
    return User.objects.create_user(email='other@example.com', password='pass1234', role='buyer')


@pytest.fixture
def seller(db):
    return User.objects.create_user(
        email='seller@example.com', password='pass1234', role='seller', business_name='Asha Crafts'
    )


@pytest.fixture
def second_seller(db):
    return User.objects.create_user(email='seller2@example.com', password='pass1234', role='seller')


@pytest.fixture
def staff(db):
    return User.objects.create_superuser(email='admin@example.com', password='pass1234')


@pytest.fixture
def make_product(seller):
    def _make(price, stock=10, owner=None, title='Hand-painted mug'):
        return Product.objects.create(
            seller=owner or seller, title=title, price=Decimal(price), stock=stock
        )
    return _make


@pytest.fixture
def place_order(buyer, address):
    """Place an order for [(product, quantity)] or [(product, quantity, gift)]"""
    def _place(lines, payment_method='cod', **kwargs):
        items = [
            {
                'product_id': line[0].pk,
                'quantity': line[1],
                'gift_packaging': line[2] if len(line) > 2 else False,
                'customizations': [],
            }
            for line in lines
        ]
        return order_service.create_order(buyer, items, address, payment_method, **kwargs)
    return _place


@pytest.fixture
def cod_order_1000(make_product, place_order):
    """COD order totalling exactly 1000 (990 of goods + 10 COD fee)"""
    return place_order([(make_product('990.00'), 1)], payment_method='cod')


@pytest.fixture
def fund_wallet():
    """Give a seller settled funds through the ledger so replay still matches"""
    def _fund(user, amount):
        amount = Decimal(amount)
        with transaction.atomic():
            wallet = wallet_service.get_or_create_wallet(user.pk, lock=True)
            wallet_service.post_entry(wallet.pk, WalletTransaction.CREDIT_PENDING, amount)
            wallet_service.post_entry(wallet.pk, WalletTransaction.TRANSFER_PENDING_TO_AVAILABLE, amount)
        return Wallet.objects.get(pk=wallet.pk)
    return _fund


@pytest.fixture
def delivered_cod_order(cod_order_1000, seller):
    order_service.confirm_order(cod_order_1000.order_id, seller)
    order_service.dispatch_order(cod_order_1000.order_id, seller)
    order_service.mark_delivered(cod_order_1000.order_id)
    return Order.objects.get(pk=cod_order_1000.pk)
