"""
Razorpay API Integration Service
Creates gateway orders and checks checkout signatures
Documentation: https://razorpay.com/docs/api/orders/

Settings / Environment Variables Required:
- RAZORPAY_KEY_ID
- RAZORPAY_KEY_SECRET
- USE_MOCK_RAZORPAY (set to 'True' for testing without real API)
"""

import requests
import logging
import secrets
from typing import Dict, Optional, Tuple
from decimal import Decimal
from django.conf import settings

from core.utils.money import rupees_to_paise, paise_to_rupees
from .utils import hmac_sha256_hex, signatures_match

logger = logging.getLogger(__name__)


class RazorpayAPIError(Exception):
    """Custom exception for Razorpay API errors"""
    pass


class RazorpayService:
    """
    Service class for interacting with the Razorpay Orders API
    """

    def __init__(self):
        self.key_id = getattr(settings, 'RAZORPAY_KEY_ID', '')
        self.key_secret = getattr(settings, 'RAZORPAY_KEY_SECRET', '')
        self.base_url = 'https://api.razorpay.com/v1'
        self.use_mock = getattr(settings, 'USE_MOCK_RAZORPAY', True)

        if not self.use_mock and not (self.key_id and self.key_secret):
            logger.warning('Razorpay API keys not configured. Using mock mode.')
            self.use_mock = True

    def _make_request(self, method: str, endpoint: str, data: Optional[Dict] = None) -> Dict:
        """
        Make HTTP request to Razorpay API (basic auth with key id and secret)

        Args:
            method: HTTP method (GET, POST)
            endpoint: API endpoint
            data: Request payload

        Returns:
            Response data as dictionary

        Raises:
            RazorpayAPIError: If API request fails
        """
        url = f"{self.base_url}{endpoint}"
        auth = (self.key_id, self.key_secret)

        try:
            if method.upper() == 'GET':
                response = requests.get(url, auth=auth, params=data, timeout=30)
            else:
                response = requests.post(url, auth=auth, json=data, timeout=30)

            response.raise_for_status()
            return response.json()

        except requests.exceptions.Timeout:
            logger.error(f'Razorpay API timeout: {endpoint}')
            raise RazorpayAPIError('Request timeout. Please try again.')

        except requests.exceptions.RequestException as e:
            logger.error(f'Razorpay API error: {str(e)}')
            error_msg = str(e)
            if getattr(e, 'response', None) is not None:
                try:
                    error_msg = e.response.json().get('error', {}).get('description', error_msg)
                except ValueError:
                    pass

            raise RazorpayAPIError(f'API Error: {error_msg}')

    # ==========================================
    # ORDERS & SIGNATURES
    # ==========================================

    def create_order(
        self,
        amount: Decimal,
        receipt: str,
        currency: str = 'INR',
        notes: Optional[Dict] = None
    ) -> Tuple[bool, Dict]:
        """
        Create a gateway order the buyer pays against in Razorpay Checkout

        Args:
            amount: Amount in rupees
            receipt: Our reference for the payment (max 40 chars)
            currency: ISO currency code
            notes: Extra key/values stored with the gateway order

        Returns:
            Tuple of (success: bool, data: dict)

        Example response:
            {
                'id': 'order_EKwxwAgItmmXdp',
                'amount': Decimal('500.00'),
                'currency': 'INR',
                'receipt': 'rcpt_...',
                'status': 'created'
            }
        """
        if self.use_mock:
            return self._mock_create_order(amount, receipt, currency)

        try:
            payload = {
                'amount': rupees_to_paise(amount),
                'currency': currency,
                'receipt': receipt,
            }
            if notes:
                payload['notes'] = notes

            data = self._make_request('POST', '/orders', data=payload)
            logger.info(f'Razorpay order created: {data.get("id")} for receipt {receipt}')

            return True, {
                'id': data.get('id'),
                'amount': paise_to_rupees(data.get('amount', 0)),
                'currency': data.get('currency', currency),
                'receipt': data.get('receipt', receipt),
                'status': data.get('status'),
            }

        except RazorpayAPIError as e:
            logger.error(f'Razorpay order creation error: {str(e)}')
            return False, {'error': str(e)}

    def generate_signature(self, gateway_order_id: str, gateway_payment_id: str) -> str:
        """
        Checkout signature: HMAC-SHA256 of "order_id|payment_id" with the key secret
        """
        return hmac_sha256_hex(self.key_secret, f'{gateway_order_id}|{gateway_payment_id}')

    def verify_payment_signature(self, gateway_order_id: str, gateway_payment_id: str, signature: str) -> bool:
        expected = self.generate_signature(gateway_order_id, gateway_payment_id)
        return signatures_match(expected, signature)

    # ==========================================
    # MOCK METHODS (FOR TESTING)
    # ==========================================

    def _mock_create_order(self, amount: Decimal, receipt: str, currency: str) -> Tuple[bool, Dict]:
        """Mock gateway order creation"""
        gateway_order_id = f'order_mock_{secrets.token_hex(7)}'
        logger.info(f'[MOCK] Razorpay order {gateway_order_id}: ₹{amount} for {receipt}')

        return True, {
            'id': gateway_order_id,
            'amount': amount,
            'currency': currency,
            'receipt': receipt,
            'status': 'created',
            'mock': True
        }


# Singleton instance
razorpay_service = RazorpayService()
