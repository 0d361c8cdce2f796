import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR / '.env')

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-dev-only-key')
DEBUG = os.getenv('DJANGO_DEBUG', 'true').lower() == 'true'
ALLOWED_HOSTS = [h.strip() for h in os.getenv('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1').split(',') if h.strip()]

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'catalog',
    'payments',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.middleware.csrf.CsrfViewMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
]

ROOT_URLCONF = 'datasoko.urls'

TEMPLATES = [
    {
        'BACKEND': 'django.template.backends.django.DjangoTemplates',
        'DIRS': [],
        'APP_DIRS': True,
        'OPTIONS': {
            'context_processors': [
                'django.template.context_processors.request',
                'django.contrib.auth.context_processors.auth',
                'django.contrib.messages.context_processors.messages',
            ],
        },
    },
]

WSGI_APPLICATION = 'datasoko.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.getenv('DJANGO_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

# One canonical session lifetime for every authenticated endpoint.
SESSION_COOKIE_AGE = 60 * 60

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'Africa/Nairobi'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'

# --- M-Pesa Daraja ---
MPESA_ENV = os.getenv('MPESA_ENV', 'sandbox')
MPESA_CONSUMER_KEY = os.getenv('MPESA_CONSUMER_KEY', '')
MPESA_CONSUMER_SECRET = os.getenv('MPESA_CONSUMER_SECRET', '')
MPESA_SHORTCODE = os.getenv('MPESA_SHORTCODE', '174379')
MPESA_PASSKEY = os.getenv('MPESA_PASSKEY', '')
MPESA_CALLBACK_URL = os.getenv('MPESA_CALLBACK_URL', 'http://localhost:8000/payments/mpesa/callback/')
MPESA_TRANSACTION_DESC = os.getenv('MPESA_TRANSACTION_DESC', 'Data Bundle Purchase')
MPESA_TIMEOUT = float(os.getenv('MPESA_TIMEOUT', '30'))
MPESA_MAX_ATTEMPTS = int(os.getenv('MPESA_MAX_ATTEMPTS', '3'))
MPESA_BACKOFF_BASE = float(os.getenv('MPESA_BACKOFF_BASE', '1.0'))

# --- Payment engine ---
PAYMENT_REFERENCE_PREFIX = os.getenv('PAYMENT_REFERENCE_PREFIX', 'DS')
PAYMENT_PENDING_TIMEOUT_MINUTES = int(os.getenv('PAYMENT_PENDING_TIMEOUT_MINUTES', '30'))
PAYMENT_POLL_INTERVAL = float(os.getenv('PAYMENT_POLL_INTERVAL', '10'))
PAYMENT_POLL_MAX_ATTEMPTS = int(os.getenv('PAYMENT_POLL_MAX_ATTEMPTS', '12'))
WEBHOOK_TIMEOUT = float(os.getenv('WEBHOOK_TIMEOUT', '10'))

LOG_LEVEL = os.getenv('DJANGO_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'verbose': {
            'format': '{asctime} {levelname} {name}: {message}',
            'style': '{',
        },
        'json': {
            '()': 'pythonjsonlogger.json.JsonFormatter',
            'fmt': '%(asctime)s %(levelname)s %(name)s %(message)s',
            'rename_fields': {'asctime': 'timestamp', 'levelname': 'level'},
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'verbose',
        },
        'audit': {
            'class': 'logging.StreamHandler',
            'formatter': 'json',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'payments': {
            'level': LOG_LEVEL,
        },
        'payments.audit': {
            'handlers': ['audit'],
            'level': 'INFO',
            'propagate': False,
        },
        'catalog': {
            'level': LOG_LEVEL,
        },
        'urllib3': {
            'level': 'WARNING',
        },
    },
}
