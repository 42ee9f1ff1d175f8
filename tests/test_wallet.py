from decimal import Decimal
from unittest import mock

import pytest
from django.db import transaction
from django.db.models.query import QuerySet

from apps.sellers.models import Order, Wallet, WalletTransaction, PlatformEarning
from apps.sellers.services import orders as order_service
from apps.sellers.services import wallet as wallet_service
from apps.sellers.services.exceptions import (
    IllegalState, InsufficientBalance, LedgerConflict, OrderValidationError
)
from core.utils.money import marketplace_setting, split_commission
from tests.helpers import refreshed

pytestmark = pytest.mark.django_db


def test_seller_gets_wallet_on_signup(seller, buyer):
    assert Wallet.objects.filter(seller=seller).exists()
    assert not Wallet.objects.filter(seller=buyer).exists()


def test_split_commission_rounds_half_up():
    commission, seller_amount = split_commission(Decimal('337.50'), Decimal('5.00'))

    assert seller_amount == Decimal('320.63')
    assert commission == Decimal('16.87')


class TestPostEntry:

    def test_rejects_non_positive_amounts(self, seller):
        with pytest.raises(OrderValidationError) as exc:
            with transaction.atomic():
                wallet_service.post_entry(seller.wallet.pk, WalletTransaction.CREDIT_PENDING, Decimal('0'))
        assert exc.value.code == 'invalid_amount'

    def test_available_cannot_go_negative(self, seller):
        with pytest.raises(InsufficientBalance):
            with transaction.atomic():
                wallet_service.post_entry(
                    seller.wallet.pk, WalletTransaction.DEBIT_WITHDRAWAL_HOLD, Decimal('1.00')
                )

        assert refreshed(seller.wallet).available_balance == Decimal('0.00')
        assert not WalletTransaction.objects.exists()

    def test_pending_cannot_go_negative(self, seller):
        with pytest.raises(IllegalState):
            with transaction.atomic():
                wallet_service.post_entry(
                    seller.wallet.pk, WalletTransaction.TRANSFER_PENDING_TO_AVAILABLE, Decimal('1.00')
                )

    def test_records_before_and_after(self, seller, fund_wallet):
        fund_wallet(seller, '200.00')

        hold = WalletTransaction.objects.filter(wallet__seller=seller).latest('id')
        assert hold.transaction_type == WalletTransaction.TRANSFER_PENDING_TO_AVAILABLE
        assert hold.balance_before == Decimal('0.00')
        assert hold.balance_after == Decimal('200.00')
        assert hold.pending_before == Decimal('200.00')
        assert hold.pending_after == Decimal('0.00')

    def test_bumps_version(self, seller, fund_wallet):
        before = refreshed(seller.wallet).version

        fund_wallet(seller, '10.00')

        assert refreshed(seller.wallet).version == before + 2


class TestVersionConflicts:
    """The wallet version moving between the read and the conditional update"""

    def test_retries_after_a_lost_update(self, seller):
        wallet_id = seller.wallet.pk
        before = refreshed(seller.wallet).version
        real_update = QuerySet.update
        attempts = []

        def lose_first_update(queryset, **kwargs):
            attempts.append(kwargs)
            if len(attempts) == 1:
                return 0
            return real_update(queryset, **kwargs)

        with mock.patch.object(QuerySet, 'update', autospec=True, side_effect=lose_first_update):
            with transaction.atomic():
                entry = wallet_service.post_entry(
                    wallet_id, WalletTransaction.CREDIT_PENDING, Decimal('100.00')
                )

        wallet = refreshed(seller.wallet)
        assert len(attempts) == 2
        assert entry.pending_after == Decimal('100.00')
        assert wallet.pending_balance == Decimal('100.00')
        assert wallet.version == before + 1
        assert wallet.transactions.count() == 1

    def test_gives_up_after_max_retries(self, seller):
        wallet_id = seller.wallet.pk
        attempts = []

        def always_lose(queryset, **kwargs):
            attempts.append(kwargs)
            return 0

        with mock.patch.object(QuerySet, 'update', autospec=True, side_effect=always_lose):
            with pytest.raises(LedgerConflict) as exc:
                with transaction.atomic():
                    wallet_service.post_entry(
                        wallet_id, WalletTransaction.CREDIT_PENDING, Decimal('100.00')
                    )

        assert exc.value.code == 'concurrent_update'
        assert len(attempts) == marketplace_setting('LEDGER_MAX_RETRIES')
        assert refreshed(seller.wallet).pending_balance == Decimal('0.00')
        assert not WalletTransaction.objects.exists()


class TestLedgerIsAppendOnly:

    def test_entries_cannot_be_edited(self, seller, fund_wallet):
        fund_wallet(seller, '50.00')
        entry = WalletTransaction.objects.first()
        entry.amount = Decimal('5000.00')

        with pytest.raises(ValueError):
            entry.save()

    def test_entries_cannot_be_deleted(self, seller, fund_wallet):
        fund_wallet(seller, '50.00')

        with pytest.raises(ValueError):
            WalletTransaction.objects.first().delete()


class TestOrderLifecycle:

    def test_accrue_is_idempotent(self, cod_order_1000, seller):
        order_service.confirm_order(cod_order_1000.order_id, seller)

        assert wallet_service.accrue_pending(refreshed(cod_order_1000)) == []
        assert refreshed(seller.wallet).pending_balance == Decimal('950.00')
        assert PlatformEarning.objects.filter(order=cod_order_1000).count() == 1

    def test_settle_moves_exact_accrual(self, delivered_cod_order, seller):
        entries = WalletTransaction.objects.filter(order=delivered_cod_order).order_by('id')

        assert [e.transaction_type for e in entries] == [
            WalletTransaction.CREDIT_PENDING, WalletTransaction.TRANSFER_PENDING_TO_AVAILABLE
        ]
        assert entries[0].amount == entries[1].amount == Decimal('950.00')

    def test_settle_twice_changes_nothing(self, delivered_cod_order, seller):
        assert wallet_service.settle(delivered_cod_order) == []
        assert refreshed(seller.wallet).available_balance == Decimal('950.00')

    def test_settle_without_accrual_is_illegal(self, cod_order_1000):
        with pytest.raises(IllegalState):
            wallet_service.settle(cod_order_1000)

    def test_reverse_after_settle_is_illegal(self, delivered_cod_order, seller):
        with pytest.raises(IllegalState):
            wallet_service.reverse(delivered_cod_order)

        assert refreshed(seller.wallet).available_balance == Decimal('950.00')

    def test_reverse_without_accrual_is_noop(self, cod_order_1000):
        assert wallet_service.reverse(cod_order_1000) == []

    def test_settle_after_reverse_is_illegal(self, cod_order_1000, seller):
        order_service.confirm_order(cod_order_1000.order_id, seller)
        wallet_service.reverse(refreshed(cod_order_1000))

        with pytest.raises(IllegalState):
            wallet_service.settle(refreshed(cod_order_1000))


class TestMultiSellerOrder:

    @pytest.fixture
    def split_order(self, seller, second_seller, make_product, place_order):
        mug = make_product('300.00')
        card = make_product('100.00', owner=second_seller, title='Greeting card')
        return place_order([(mug, 1), (card, 1)], payment_method='cod')

    def test_allocations_cover_total(self, split_order, seller, second_seller):
        assert split_order.total_amount == Decimal('450.00')
        assert split_order.seller_allocations() == [
            (seller.pk, Decimal('337.50')),
            (second_seller.pk, Decimal('112.50')),
        ]

    def test_each_seller_accrues_their_share(self, split_order, seller, second_seller):
        order_service.confirm_order(split_order.order_id, second_seller)

        assert refreshed(seller.wallet).pending_balance == Decimal('320.63')
        assert refreshed(second_seller.wallet).pending_balance == Decimal('106.88')
        assert refreshed(split_order).commission_amount == Decimal('22.49')

    def test_delivery_settles_every_seller(self, split_order, seller, second_seller):
        order_service.confirm_order(split_order.order_id, seller)
        order_service.dispatch_order(split_order.order_id, second_seller)
        order_service.mark_delivered(split_order.order_id)

        assert refreshed(seller.wallet).available_balance == Decimal('320.63')
        assert refreshed(second_seller.wallet).available_balance == Decimal('106.88')
        assert refreshed(split_order).status == Order.STATUS_DELIVERED


class TestLockOrder:

    @pytest.fixture
    def promoted_seller(self, other_buyer, seller):
        """Older account that became a seller later, so its wallet id is higher"""
        other_buyer.role = 'seller'
        other_buyer.save()
        assert other_buyer.pk < seller.pk
        assert other_buyer.wallet.pk > seller.wallet.pk
        return other_buyer

    @pytest.fixture
    def confirmed_order(self, promoted_seller, seller, make_product, place_order):
        mug = make_product('300.00')
        card = make_product('100.00', owner=promoted_seller, title='Greeting card')
        order = place_order([(mug, 1), (card, 1)], payment_method='cod')
        order_service.confirm_order(order.order_id, seller)
        return order

    def _posted_wallets(self, action, order):
        with mock.patch.object(wallet_service, 'post_entry', wraps=wallet_service.post_entry) as post:
            action(order)
        return [call.args[0] for call in post.call_args_list]

    def test_accrue_settle_and_reverse_share_one_order(self, confirmed_order, promoted_seller, seller):
        expected = [promoted_seller.wallet.pk, seller.wallet.pk]
        accrued = list(
            WalletTransaction.objects.filter(order=confirmed_order).order_by('id')
            .values_list('wallet_id', flat=True)
        )

        assert accrued == expected
        assert self._posted_wallets(wallet_service.reverse, confirmed_order) == expected

    def test_settle_follows_seller_order(self, confirmed_order, promoted_seller, seller):
        assert self._posted_wallets(wallet_service.settle, confirmed_order) == [
            promoted_seller.wallet.pk, seller.wallet.pk
        ]


class TestReplay:

    def test_replay_matches_stored_balances(self, delivered_cod_order, seller, fund_wallet):
        fund_wallet(seller, '75.25')
        wallet = refreshed(seller.wallet)

        replayed = wallet_service.replay(wallet)

        assert replayed == {
            'available_balance': Decimal('1025.25'),
            'pending_balance': Decimal('0.00'),
            'total_earned': Decimal('1025.25'),
            'total_withdrawn': Decimal('0.00'),
        }
        assert wallet_service.reconcile(wallet) == {}

    def test_reconcile_reports_drift(self, seller, fund_wallet):
        fund_wallet(seller, '100.00')
        Wallet.objects.filter(seller=seller).update(available_balance=Decimal('150.00'))

        drift = wallet_service.reconcile(refreshed(seller.wallet))

        assert drift == {'available_balance': {'stored': '150.00', 'replayed': '100.00'}}
