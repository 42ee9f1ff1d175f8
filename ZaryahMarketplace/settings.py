"""
Django settings for ZaryahMarketplace project.

Environment Variables:
- DJANGO_SECRET_KEY, DEBUG, ALLOWED_HOSTS
- DB_ENGINE ('sqlite' or 'postgres') and POSTGRES_* connection values
- RAZORPAY_KEY_ID, RAZORPAY_KEY_SECRET, USE_MOCK_RAZORPAY
- SHIPROCKET_WEBHOOK_SECRET
- USE_MOCK_NOTIFICATIONS, EMAIL_* for the SMTP backend
"""

import os
from pathlib import Path
from decimal import Decimal


BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=''):
    value = os.getenv(name, default)
    return value.lower() in ('1', 'true', 'yes', 'on')


SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'dev-only-insecure-key')
DEBUG = env_bool('DEBUG', 'true')
ALLOWED_HOSTS = os.getenv('ALLOWED_HOSTS', '*').split(',')


INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    # local apps
    'apps.users',
    'apps.sellers',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
]

ROOT_URLCONF = 'ZaryahMarketplace.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.debug',
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'ZaryahMarketplace.wsgi.application'


# ==========================================
# DATABASE
# ==========================================

DB_ENGINE = os.getenv('DB_ENGINE', 'sqlite')
if DB_ENGINE == 'postgres':
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('POSTGRES_DB', 'zaryah'),
            'USER': os.getenv('POSTGRES_USER', 'zaryah'),
            'PASSWORD': os.getenv('POSTGRES_PASSWORD', 'zaryah'),
            'HOST': os.getenv('POSTGRES_HOST', 'localhost'),
            'PORT': os.getenv('POSTGRES_PORT', '5432'),
        }
    }
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': BASE_DIR / 'db.sqlite3',
        }
    }

AUTH_USER_MODEL = 'users.CustomUser'
AUTH_PASSWORD_VALIDATORS = []

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'Asia/Kolkata'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# ==========================================
# EMAIL
# ==========================================

EMAIL_BACKEND = os.getenv('EMAIL_BACKEND', 'django.core.mail.backends.console.EmailBackend')
EMAIL_HOST = os.getenv('EMAIL_HOST', 'localhost')
EMAIL_PORT = int(os.getenv('EMAIL_PORT', '587'))
EMAIL_HOST_USER = os.getenv('EMAIL_HOST_USER', '')
EMAIL_HOST_PASSWORD = os.getenv('EMAIL_HOST_PASSWORD', '')
EMAIL_USE_TLS = env_bool('EMAIL_USE_TLS', 'true')
DEFAULT_FROM_EMAIL = os.getenv('DEFAULT_FROM_EMAIL', 'noreply@zaryah.com')


# ==========================================
# PAYMENTS & COURIER
# ==========================================

RAZORPAY_KEY_ID = os.getenv('RAZORPAY_KEY_ID', '')
RAZORPAY_KEY_SECRET = os.getenv('RAZORPAY_KEY_SECRET', 'dev-razorpay-secret')
USE_MOCK_RAZORPAY = env_bool('USE_MOCK_RAZORPAY', 'true')

SHIPROCKET_WEBHOOK_SECRET = os.getenv('SHIPROCKET_WEBHOOK_SECRET', 'dev-shiprocket-secret')

USE_MOCK_NOTIFICATIONS = env_bool('USE_MOCK_NOTIFICATIONS', 'true')


# ==========================================
# MARKETPLACE RULES
# ==========================================

MARKETPLACE = {
    'CURRENCY': 'INR',
    'COMMISSION_RATE': Decimal('5.00'),
    'FREE_DELIVERY_THRESHOLD': Decimal('500.00'),
    'DELIVERY_FEE': Decimal('40.00'),
    'GIFT_PACKAGING_FEE': Decimal('50.00'),
    'COD_FEE': Decimal('10.00'),
    'MIN_WITHDRAWAL_AMOUNT': Decimal('500.00'),
    # Optimistic-lock attempts for a single wallet mutation
    'LEDGER_MAX_RETRIES': 3,
}


# ==========================================
# LOGGING
# ==========================================

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name} {message}',
            'style': '{',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
    },
    'loggers': {
        'apps': {
            'handlers': ['console'],
            'level': os.getenv('APP_LOG_LEVEL', 'INFO'),
            'propagate': True,
        },
        'django': {
            'handlers': ['console'],
            'level': os.getenv('DJANGO_LOG_LEVEL', 'WARNING'),
        },
    },
}
