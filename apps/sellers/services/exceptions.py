"""
Marketplace Service Errors
Every domain failure carries a stable error code and the HTTP status views answer with
"""


class MarketplaceError(Exception):
    """Base exception for order, payment, wallet and withdrawal failures"""

    code = 'marketplace_error'
    status = 400

    def __init__(self, message=None, code=None, details=None):
        self.code = code or self.code
        self.message = message or self.code.replace('_', ' ').capitalize()
        self.details = details or {}
        super().__init__(self.message)

    def as_dict(self):
        payload = {'success': False, 'error': self.code, 'message': self.message}
        if self.details:
            payload['details'] = self.details
        return payload


# ==========================================
# VALIDATION ERRORS
# ==========================================

class OrderValidationError(MarketplaceError):
    """Malformed or missing input: rejected as-is, never retried"""
    code = 'invalid_payload'


class InsufficientStock(MarketplaceError):
    code = 'insufficient_stock'


class InsufficientBalance(MarketplaceError):
    code = 'insufficient_balance'


# ==========================================
# LOOKUP & ACCESS ERRORS
# ==========================================

class ProductNotFound(MarketplaceError):
    code = 'product_not_found'
    status = 404


class OrderNotFound(MarketplaceError):
    code = 'order_not_found'
    status = 404


class WithdrawalNotFound(MarketplaceError):
    code = 'withdrawal_not_found'
    status = 404


class PermissionDeniedError(MarketplaceError):
    code = 'forbidden'
    status = 403


# ==========================================
# STATE ERRORS
# ==========================================

class IllegalState(MarketplaceError):
    """Operation not allowed from the current persisted state"""
    code = 'illegal_state'
    status = 409


class PaymentNotReady(IllegalState):
    code = 'payment_not_ready'


class LedgerConflict(MarketplaceError):
    """Wallet row kept changing underneath us until retries ran out"""
    code = 'concurrent_update'
    status = 409


# ==========================================
# PAYMENT ERRORS
# ==========================================

class PaymentSignatureError(MarketplaceError):
    """Gateway signature did not match; the order stays unpaid and can be retried"""
    code = 'invalid_signature'


class PaymentGatewayError(MarketplaceError):
    code = 'gateway_error'
    status = 502
