"""
Notification Service
Email notifications for buyers and sellers about orders and withdrawals

Environment Variables:
- EMAIL_BACKEND, EMAIL_HOST, EMAIL_PORT, EMAIL_HOST_USER, EMAIL_HOST_PASSWORD
- USE_MOCK_NOTIFICATIONS (set to 'True' to log instead of sending)
"""

import logging
from django.conf import settings

from core.utils.email_service import send_marketplace_email

logger = logging.getLogger(__name__)


class EmailService:
    """
    Plain-text email through Django's email backend
    """

    def __init__(self):
        self.use_mock = getattr(settings, 'USE_MOCK_NOTIFICATIONS', True)

    def send_email(self, to_email: str, subject: str, message: str) -> bool:
        """
        Send email to a single recipient

        Returns:
            True if sent successfully, False otherwise
        """
        if self.use_mock:
            return self._mock_send_email(to_email, subject, message)

        try:
            send_marketplace_email(subject, message, [to_email])
            logger.info(f'Email sent to {to_email}: {subject}')
            return True

        except (ValueError, RuntimeError, OSError) as e:
            logger.error(f'Email send error to {to_email}: {str(e)}')
            return False

    def _mock_send_email(self, to_email: str, subject: str, message: str) -> bool:
        """Mock email sending for development and tests"""
        logger.info(f'[MOCK EMAIL] To: {to_email} | Subject: {subject}')
        logger.debug(f'[MOCK EMAIL] Message: {message[:100]}...')
        return True


class NotificationService:
    """
    Marketplace notifications. Callers schedule these with transaction.on_commit.
    """

    def __init__(self):
        self.email = EmailService()

    # ==========================================
    # ORDER NOTIFICATIONS
    # ==========================================

    def send_new_order(self, order) -> bool:
        """
        Tell every seller on a new order which of their items were bought
        """
        sent = True
        sellers = {}
        for item in order.items.select_related('seller'):
            sellers.setdefault(item.seller, []).append(item)

        for seller, items in sellers.items():
            lines = '\n'.join(f'- {item.product_title} x{item.quantity}' for item in items)
            sent = self.email.send_email(
                to_email=seller.email,
                subject=f'New Order - #{str(order.order_id)[:8]}',
                message=f"""
Hello {seller.display_name},

You have a new order ({order.get_payment_method_display()}):

{lines}

Please confirm it from your seller dashboard.

Zaryah Team
                """,
            ) and sent

        return sent

    def send_order_status_update(self, order) -> bool:
        """
        Send email to the buyer when order status changes
        """
        status_messages = {
            'confirmed': 'Your order has been confirmed and is being prepared.',
            'dispatched': 'Your order is on its way.',
            'delivered': 'Your order has been delivered. Enjoy your gift!',
            'cancelled': 'Your order has been cancelled.',
        }

        message = status_messages.get(order.status, f'Your order status: {order.get_status_display()}')
        if order.status == 'dispatched' and order.awb_code:
            message += f' Tracking: {order.awb_code}'

        return self.email.send_email(
            to_email=order.buyer.email,
            subject=f'Order Update - #{str(order.order_id)[:8]}',
            message=f"""
Hello,

{message}

Order ID: #{str(order.order_id)[:8]}
Total: ₹{order.total_amount}

Thank you for shopping on Zaryah!
            """,
        )

    # ==========================================
    # WALLET/WITHDRAWAL NOTIFICATIONS
    # ==========================================

    def send_withdrawal_update(self, withdrawal) -> bool:
        """
        Send email to the seller when a withdrawal is approved, rejected or paid out
        """
        outcome = {
            'approved': 'has been approved and will be transferred shortly.',
            'completed': 'has been transferred to your bank account.',
            'rejected': f'was rejected: {withdrawal.failure_reason}. The amount is back in your wallet.',
        }.get(withdrawal.status, f'is now {withdrawal.get_status_display()}.')

        return self.email.send_email(
            to_email=withdrawal.seller.email,
            subject=f'Withdrawal {withdrawal.get_status_display()} - ₹{withdrawal.amount}',
            message=f"""
Hello {withdrawal.seller.display_name},

Your withdrawal of ₹{withdrawal.amount} (ref {withdrawal.reference}) {outcome}

Zaryah Team
            """,
        )


# Singleton instance
notification_service = NotificationService()
