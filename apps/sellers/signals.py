"""
Sellers App Signals
Wallet creation for seller accounts
"""

import logging

from django.conf import settings
from django.db.models.signals import post_save
from django.dispatch import receiver

from .models import Wallet

logger = logging.getLogger(__name__)


# ==========================================
# USER SIGNALS (CREATE WALLET)
# ==========================================

@receiver(post_save, sender=settings.AUTH_USER_MODEL)
def create_seller_wallet(sender, instance, created, **kwargs):
    """
    Give every seller exactly one wallet, on signup or when promoted to seller
    """
    if getattr(instance, 'role', None) != 'seller':
        return

    wallet, wallet_created = Wallet.objects.get_or_create(seller=instance)
    if wallet_created:
        logger.info(f'Wallet created for seller: {instance.email}')
