"""
Sellers App URLs
Mounted under /api/
"""

from django.urls import path
from . import views

app_name = 'sellers'

urlpatterns = [
    # ==========================================
    # ORDERS
    # ==========================================
    path('orders', views.orders_collection, name='orders'),
    path('orders/<uuid:order_id>', views.order_detail, name='order_detail'),

    # ==========================================
    # PAYMENTS
    # ==========================================
    path('payment/create-order', views.create_payment_intent, name='payment_create_order'),
    path('payment/verify', views.verify_payment, name='payment_verify'),

    # ==========================================
    # COURIER
    # ==========================================
    path('webhooks/delivery-updates', views.delivery_webhook, name='delivery_webhook'),

    # ==========================================
    # WALLET
    # ==========================================
    path('wallet', views.wallet_overview, name='wallet'),
    path('wallet/withdrawals', views.withdrawals_collection, name='withdrawals'),

    # ==========================================
    # ADMIN
    # ==========================================
    path('admin/withdrawals/<uuid:withdrawal_id>/resolve', views.resolve_withdrawal, name='resolve_withdrawal'),
    path('admin/earnings', views.earnings_summary, name='earnings'),
]
