"""
Sellers App Utility Functions
Reference codes, HMAC signatures and display helpers
"""

import hashlib
import hmac
import secrets
import string
from django.utils import timezone


# ==========================================
# REFERENCES & SIGNATURES
# ==========================================

def generate_reference(prefix: str = 'REF', length: int = 10) -> str:
    """
    Generate unique reference code

    Args:
        prefix: Reference prefix (e.g., 'WDR', 'RCPT')
        length: Length of random part

    Returns:
        Reference string (e.g., 'WDR_20240101_A8K3M9P2L5')
    """
    chars = string.ascii_uppercase + string.digits
    random_part = ''.join(secrets.choice(chars) for _ in range(length))
    datestamp = timezone.now().strftime('%Y%m%d')

    return f"{prefix}_{datestamp}_{random_part}"


def hmac_sha256_hex(secret: str, message) -> str:
    """
    Hex HMAC-SHA256 of message (str or bytes) under secret
    """
    if isinstance(message, str):
        message = message.encode('utf-8')
    return hmac.new(secret.encode('utf-8'), message, hashlib.sha256).hexdigest()


def signatures_match(expected: str, provided: str) -> bool:
    """Constant-time comparison; a missing signature never matches"""
    if not provided:
        return False
    return hmac.compare_digest(expected.encode('utf-8'), str(provided).encode('utf-8'))


# ==========================================
# DISPLAY HELPERS
# ==========================================

def mask_sensitive_info(text: str, visible_chars: int = 4) -> str:
    """
    Mask all but the last N characters (e.g., '********5678')
    """
    if not text or len(text) <= visible_chars:
        return text

    masked_length = len(text) - visible_chars
    return '*' * masked_length + text[-visible_chars:]
