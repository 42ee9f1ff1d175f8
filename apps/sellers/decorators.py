"""
Sellers App Decorators
Access control and error translation for the JSON API views
"""

import json
import logging
from functools import wraps

from django.db import DatabaseError
from django.http import JsonResponse

from .services.exceptions import MarketplaceError

logger = logging.getLogger(__name__)


# ==========================================
# ACCESS DECORATORS
# ==========================================

def _auth_error():
    return JsonResponse({
        'success': False,
        'error': 'authentication_required',
        'message': 'Authentication required'
    }, status=401)


def _role_error(message):
    return JsonResponse({
        'success': False,
        'error': 'forbidden',
        'message': message
    }, status=403)


def api_login_required(view_func):
    """
    Any authenticated user. Returns JSON 401 instead of redirecting to a login page.
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _auth_error()
        return view_func(request, *args, **kwargs)

    return wrapper


def buyer_required(view_func):
    """
    Usage:
        @buyer_required
        def create_payment_intent(request):
            ...
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _auth_error()
        if not request.user.is_buyer:
            return _role_error('Buyer account required')
        return view_func(request, *args, **kwargs)

    return wrapper


def seller_required(view_func):
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _auth_error()
        if not request.user.is_seller:
            return _role_error('Seller account required')
        return view_func(request, *args, **kwargs)

    return wrapper


def staff_required(view_func):
    """
    Platform admins only (is_staff)
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        if not request.user.is_authenticated:
            return _auth_error()
        if not request.user.is_staff:
            return _role_error('Admin access required')
        return view_func(request, *args, **kwargs)

    return wrapper


# ==========================================
# ERROR TRANSLATION
# ==========================================

def json_api(view_func):
    """
    Decode the JSON body into request.json and turn service errors into JSON responses.

    - Malformed JSON -> 400 invalid_payload
    - MarketplaceError -> its own code and status
    - DatabaseError -> logged, generic 500 (the atomic block has rolled back)
    """
    @wraps(view_func)
    def wrapper(request, *args, **kwargs):
        request.json = {}
        if request.method in ('POST', 'PUT', 'PATCH') and request.body:
            try:
                request.json = json.loads(request.body)
            except (ValueError, UnicodeDecodeError):
                return JsonResponse({
                    'success': False,
                    'error': 'invalid_payload',
                    'message': 'Request body must be valid JSON'
                }, status=400)

        try:
            return view_func(request, *args, **kwargs)

        except MarketplaceError as e:
            logger.info(f'{request.method} {request.path} rejected: {e.code} - {e.message}')
            return JsonResponse(e.as_dict(), status=e.status)

        except DatabaseError:
            logger.exception(f'Database error during {request.method} {request.path}')
            return JsonResponse({
                'success': False,
                'error': 'server_error',
                'message': 'Something went wrong. Please try again.'
            }, status=500)

    return wrapper
