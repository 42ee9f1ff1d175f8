from decimal import Decimal

import pytest

from apps.sellers.models import WithdrawalRequest
from apps.sellers.services import withdrawals as withdrawal_service
from apps.sellers.services.notifications import NotificationService
from core.utils.email_service import send_marketplace_email
from tests.helpers import BANK_DETAILS

pytestmark = pytest.mark.django_db


@pytest.fixture
def live_notifications(settings):
    settings.USE_MOCK_NOTIFICATIONS = False
    return NotificationService()


def test_new_order_mails_each_seller(live_notifications, make_product, place_order, second_seller, mailoutbox):
    mug = make_product('200.00')
    card = make_product('50.00', owner=second_seller, title='Greeting card')
    order = place_order([(mug, 1), (card, 2)])

    assert live_notifications.send_new_order(order) is True

    assert sorted(mail.to[0] for mail in mailoutbox) == ['seller2@example.com', 'seller@example.com']
    card_mail = next(mail for mail in mailoutbox if mail.to == ['seller2@example.com'])
    assert 'Greeting card x2' in card_mail.body
    assert 'Hand-painted mug' not in card_mail.body


def test_status_update_goes_to_buyer(live_notifications, delivered_cod_order, mailoutbox):
    live_notifications.send_order_status_update(delivered_cod_order)

    assert len(mailoutbox) == 1
    assert mailoutbox[0].to == ['buyer@example.com']
    assert mailoutbox[0].subject.startswith('[Zaryah] Order Update')
    assert 'delivered' in mailoutbox[0].body


def test_rejected_withdrawal_mail_explains_reason(live_notifications, seller, staff, fund_wallet, mailoutbox):
    fund_wallet(seller, '700.00')
    withdrawal = withdrawal_service.request_withdrawal(seller, Decimal('600.00'), BANK_DETAILS)
    withdrawal = withdrawal_service.resolve_withdrawal(
        withdrawal.withdrawal_id, WithdrawalRequest.STATUS_REJECTED, staff, 'IFSC not found'
    )

    live_notifications.send_withdrawal_update(withdrawal)

    assert 'IFSC not found' in mailoutbox[-1].body


def test_mock_mode_sends_nothing(settings, delivered_cod_order, mailoutbox):
    settings.USE_MOCK_NOTIFICATIONS = True

    assert NotificationService().send_order_status_update(delivered_cod_order) is True
    assert mailoutbox == []


def test_email_requires_a_recipient():
    with pytest.raises(ValueError):
        send_marketplace_email('Subject', 'Body', ['  '])


def test_email_body_is_dedented(mailoutbox):
    send_marketplace_email('Hello', '\n    Line one\n    Line two\n    ', ['a@example.com'], reply_to='help@zaryah.com')

    assert mailoutbox[0].body == 'Line one\nLine two\n'
    assert mailoutbox[0].reply_to == ['help@zaryah.com']
    assert mailoutbox[0].subject == '[Zaryah] Hello'
