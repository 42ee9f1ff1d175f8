"""
Sellers App Views
JSON API for checkout, payments, order status, courier updates, seller wallets and admin settlement
"""

import logging
import uuid
from datetime import timedelta

from django.conf import settings
from django.db.models import Sum, Count
from django.http import JsonResponse
from django.utils import timezone
from django.views.decorators.csrf import csrf_exempt
from django.views.decorators.http import require_http_methods

from core.utils.money import marketplace_setting, quantize
from .decorators import (
    api_login_required, buyer_required, seller_required, staff_required, json_api
)
from .forms import (
    CheckoutForm, PaymentIntentForm, PaymentVerifyForm, OrderStatusUpdateForm,
    WithdrawalRequestForm, WithdrawalResolveForm
)
from .models import Order, PlatformEarning
from .serializers import (
    serialize_order, serialize_wallet, serialize_transaction, serialize_withdrawal
)
from .services import orders as order_service
from .services import payments as payment_service
from .services import wallet as wallet_service
from .services import withdrawals as withdrawal_service
from .services.exceptions import (
    OrderNotFound, PermissionDeniedError, PaymentSignatureError
)
from .services.utils import hmac_sha256_hex, signatures_match

logger = logging.getLogger(__name__)


def _form_error(form, field_codes=None):
    """
    400 response for an invalid form. The first failing field picks the error code.
    """
    code = 'invalid_payload'
    for field in form.errors:
        if field_codes and field in field_codes:
            code = field_codes[field]
            break

    return JsonResponse({
        'success': False,
        'error': code,
        'message': 'Invalid request',
        'details': form.errors.get_json_data(),
    }, status=400)


def _orders_visible_to(user):
    if user.is_staff:
        return Order.objects.all()
    if user.is_seller:
        return Order.objects.filter(items__seller=user).distinct()
    return Order.objects.filter(buyer=user)


# ==========================================
# ORDERS
# ==========================================

@api_login_required
@require_http_methods(["GET", "POST"])
@json_api
def orders_collection(request):
    """
    GET: Orders the user bought, sold into, or (staff) all orders
    POST: Place an order (buyers only)
    """
    if request.method == 'GET':
        orders = _orders_visible_to(request.user).prefetch_related('items')
        status = request.GET.get('status')
        if status:
            orders = orders.filter(status=status)
        return JsonResponse({
            'success': True,
            'orders': [serialize_order(order) for order in orders[:100]],
        })

    if not request.user.is_buyer:
        raise PermissionDeniedError('Only buyers can place orders')

    form = CheckoutForm(request.json)
    if not form.is_valid():
        return _form_error(form, {'items': 'invalid_items', 'address': 'address_required'})

    order = order_service.create_order(
        buyer=request.user,
        items=form.cleaned_data['items'],
        address=form.cleaned_data['address'],
        payment_method=form.cleaned_data['payment_method'],
        expected_total=form.cleaned_data.get('total_amount'),
    )
    return JsonResponse({'success': True, 'order': serialize_order(order)}, status=201)


@api_login_required
@require_http_methods(["GET", "PUT"])
@json_api
def order_detail(request, order_id):
    """
    GET: Order detail for the buyer, its sellers or staff
    PUT: {status} in confirmed, dispatched (sellers) or cancelled (buyer or seller)
    """
    if request.method == 'GET':
        order = _orders_visible_to(request.user).filter(order_id=order_id).first()
        if order is None:
            raise OrderNotFound(f'Order {order_id} not found')
        return JsonResponse({'success': True, 'order': serialize_order(order)})

    form = OrderStatusUpdateForm(request.json)
    if not form.is_valid():
        return _form_error(form, {'status': 'invalid_status'})

    order = order_service.update_order_status(order_id, form.cleaned_data['status'], request.user)
    return JsonResponse({
        'success': True,
        'message': f'Order status updated to {order.get_status_display()}',
        'order': serialize_order(order),
    })


# ==========================================
# PAYMENTS
# ==========================================

@buyer_required
@require_http_methods(["POST"])
@json_api
def create_payment_intent(request):
    """
    POST: {order_id, amount} -> gateway order for Razorpay Checkout
    """
    form = PaymentIntentForm(request.json)
    if not form.is_valid():
        return _form_error(form, {'amount': 'invalid_amount'})

    intent = payment_service.create_intent(
        form.cleaned_data['order_id'],
        form.cleaned_data['amount'],
        request.user,
    )
    return JsonResponse({'success': True, **intent})


@buyer_required
@require_http_methods(["PATCH", "POST"])
@json_api
def verify_payment(request):
    """
    PATCH/POST: Checkout callback payload -> {ok: true} or 400 {ok: false}
    """
    form = PaymentVerifyForm(request.json)
    if not form.is_valid():
        return _form_error(form)

    data = form.cleaned_data
    if not Order.objects.filter(order_id=data['order_id'], buyer=request.user).exists():
        raise OrderNotFound(f"Order {data['order_id']} not found")

    try:
        result = payment_service.verify_payment(
            data['order_id'],
            data['gateway_order_id'],
            data['gateway_payment_id'],
            data['gateway_signature'],
        )
    except PaymentSignatureError as e:
        return JsonResponse({'ok': False, **e.as_dict()}, status=e.status)

    return JsonResponse({'success': True, **result})


# ==========================================
# COURIER WEBHOOK
# ==========================================

@csrf_exempt
@require_http_methods(["POST"])
@json_api
def delivery_webhook(request):
    """
    POST: Shiprocket status push, signed with HMAC-SHA256 of the raw body.
    Only 'Delivered' moves the order; other statuses are recorded for tracking.
    """
    if not request.body or request.json == {}:
        return JsonResponse({'success': True, 'message': 'pong'})

    expected = hmac_sha256_hex(settings.SHIPROCKET_WEBHOOK_SECRET, request.body)
    if not signatures_match(expected, request.headers.get('X-Shiprocket-Signature', '')):
        logger.warning('Delivery webhook rejected: bad signature')
        return JsonResponse({'success': False, 'error': 'invalid_signature'}, status=401)

    payload = request.json if isinstance(request.json, dict) else {}
    order_id = payload.get('order_id')
    courier_status = str(payload.get('current_status') or '').strip()
    if not order_id or not courier_status:
        return JsonResponse({
            'success': False,
            'error': 'invalid_payload',
            'message': 'order_id and current_status are required'
        }, status=400)

    try:
        order_id = uuid.UUID(str(order_id))
    except ValueError:
        return JsonResponse({
            'success': False,
            'error': 'invalid_payload',
            'message': 'order_id must be a UUID'
        }, status=400)

    shipment = {key: payload.get(key) for key in ('shipment_id', 'awb_code', 'courier_name')}

    if courier_status.lower() == 'delivered':
        order = order_service.mark_delivered(order_id, shipment=shipment)
    else:
        order = order_service.record_shipment_status(order_id, courier_status, shipment=shipment)

    return JsonResponse({'success': True, 'order_id': str(order.order_id), 'status': order.status})


# ==========================================
# WALLET & WITHDRAWALS
# ==========================================

@seller_required
@require_http_methods(["GET"])
@json_api
def wallet_overview(request):
    """
    GET: {wallet, transactions[], withdrawals[]}; read-only
    """
    wallet = wallet_service.get_or_create_wallet(request.user.pk)
    transactions = wallet.transactions.select_related('order', 'withdrawal')[:50]
    withdrawals = wallet.withdrawals.all()[:20]

    return JsonResponse({
        'success': True,
        'wallet': serialize_wallet(wallet),
        'transactions': [serialize_transaction(entry) for entry in transactions],
        'withdrawals': [serialize_withdrawal(withdrawal) for withdrawal in withdrawals],
    })


@seller_required
@require_http_methods(["GET", "POST"])
@json_api
def withdrawals_collection(request):
    """
    GET: Withdrawal history
    POST: {amount, bank_account_number, ifsc_code, account_holder_name}
    """
    if request.method == 'GET':
        withdrawals = request.user.withdrawals.all()[:100]
        return JsonResponse({
            'success': True,
            'withdrawals': [serialize_withdrawal(withdrawal) for withdrawal in withdrawals],
        })

    form = WithdrawalRequestForm(request.json)
    if not form.is_valid():
        return _form_error(form, {
            'amount': 'invalid_amount',
            'bank_account_number': 'invalid_bank_details',
            'ifsc_code': 'invalid_bank_details',
            'account_holder_name': 'invalid_bank_details',
        })

    withdrawal = withdrawal_service.request_withdrawal(
        request.user,
        form.cleaned_data['amount'],
        form.bank_details(),
    )
    return JsonResponse({
        'success': True,
        'message': 'Withdrawal request submitted. It will be processed within 2-3 business days.',
        'withdrawal': serialize_withdrawal(withdrawal),
    }, status=201)


# ==========================================
# ADMIN
# ==========================================

@staff_required
@require_http_methods(["POST"])
@json_api
def resolve_withdrawal(request, withdrawal_id):
    """
    POST: {outcome: approved|rejected|completed, failure_reason}
    """
    form = WithdrawalResolveForm(request.json)
    if not form.is_valid():
        return _form_error(form, {'outcome': 'invalid_outcome'})

    withdrawal = withdrawal_service.resolve_withdrawal(
        withdrawal_id,
        form.cleaned_data['outcome'],
        request.user,
        failure_reason=form.cleaned_data.get('failure_reason') or None,
    )
    return JsonResponse({'success': True, 'withdrawal': serialize_withdrawal(withdrawal)})


@staff_required
@require_http_methods(["GET"])
@json_api
def earnings_summary(request):
    """
    GET: Commission earned, optionally filtered by ?period=today|week|month and ?seller_id=
    """
    earnings = PlatformEarning.objects.filter(status='earned')

    period_days = {'today': 0, 'week': 7, 'month': 30}
    period = request.GET.get('period')
    if period in period_days:
        since = timezone.now().replace(hour=0, minute=0, second=0, microsecond=0)
        since -= timedelta(days=period_days[period])
        earnings = earnings.filter(created_at__gte=since)

    seller_id = request.GET.get('seller_id')
    if seller_id:
        if not seller_id.isdigit():
            return JsonResponse({'success': False, 'error': 'invalid_payload'}, status=400)
        earnings = earnings.filter(seller_id=int(seller_id))

    totals = earnings.aggregate(
        total_commission=Sum('commission_amount'),
        total_seller_amount=Sum('seller_amount'),
        total_orders=Count('order', distinct=True),
    )
    total_commission = totals['total_commission'] or 0
    total_orders = totals['total_orders'] or 0
    average = quantize(total_commission / total_orders) if total_orders else quantize(0)

    recent = earnings.select_related('order')[:20]

    return JsonResponse({
        'success': True,
        'summary': {
            'total_commission': str(quantize(total_commission)),
            'total_seller_amount': str(quantize(totals['total_seller_amount'] or 0)),
            'total_orders': total_orders,
            'avg_commission_per_order': str(average),
            'commission_rate': str(marketplace_setting('COMMISSION_RATE')),
            'reversed_count': PlatformEarning.objects.filter(status='reversed').count(),
        },
        'earnings': [
            {
                'order_id': str(earning.order.order_id),
                'seller_id': earning.seller_id,
                'order_amount': str(earning.order_amount),
                'commission_amount': str(earning.commission_amount),
                'seller_amount': str(earning.seller_amount),
                'created_at': earning.created_at.isoformat(),
            }
            for earning in recent
        ],
    })
