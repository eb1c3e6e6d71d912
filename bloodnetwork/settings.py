"""
Django settings for the bloodnetwork emergency coordination service.

Every deployment-specific value is read from the environment (optionally via a
local ``.env`` file) so the same module serves development, tests and
production.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv(override=False)


def _env_bool(name, default=False):
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in {'1', 'true', 'yes', 'on'}


def _env_int(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name, default):
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'insecure-development-key-change-me')

DEBUG = _env_bool('DJANGO_DEBUG', True)

ALLOWED_HOSTS = [h.strip() for h in os.getenv('DJANGO_ALLOWED_HOSTS', '*').split(',') if h.strip()]


INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'donor.apps.DonorConfig',
    'emergency.apps.EmergencyConfig',
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

ROOT_URLCONF = 'bloodnetwork.urls'

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

WSGI_APPLICATION = 'bloodnetwork.wsgi.application'


# Database
# Any Django backend works; select_for_update() is honoured where the backend
# supports row locks and the services fall back to compare-and-swap updates.
DATABASES = {
    'default': {
        'ENGINE': os.getenv('DB_ENGINE', 'django.db.backends.sqlite3'),
        'NAME': os.getenv('DB_NAME', str(BASE_DIR / 'db.sqlite3')),
        'USER': os.getenv('DB_USER', ''),
        'PASSWORD': os.getenv('DB_PASSWORD', ''),
        'HOST': os.getenv('DB_HOST', ''),
        'PORT': os.getenv('DB_PORT', ''),
    }
}

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'

AUTH_PASSWORD_VALIDATORS = [
    {'NAME': 'django.contrib.auth.password_validation.UserAttributeSimilarityValidator'},
    {'NAME': 'django.contrib.auth.password_validation.MinimumLengthValidator'},
    {'NAME': 'django.contrib.auth.password_validation.CommonPasswordValidator'},
    {'NAME': 'django.contrib.auth.password_validation.NumericPasswordValidator'},
]

LANGUAGE_CODE = 'en-us'
TIME_ZONE = os.getenv('DJANGO_TIME_ZONE', 'UTC')
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
STATIC_ROOT = BASE_DIR / 'staticfiles'


# Logging
LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s %(levelname)s %(name)s: %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'loggers': {
        'emergency': {
            'handlers': ['console'],
            'level': os.getenv('EMERGENCY_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
        'donor': {
            'handlers': ['console'],
            'level': os.getenv('EMERGENCY_LOG_LEVEL', 'INFO'),
            'propagate': False,
        },
    },
    'root': {
        'handlers': ['console'],
        'level': os.getenv('DJANGO_LOG_LEVEL', 'WARNING'),
    },
}


# Emergency coordination
DONATION_RECOVERY_DAYS = _env_int('DONATION_RECOVERY_DAYS', 56)
EMERGENCY_ALERT_TTL_HOURS = _env_int('EMERGENCY_ALERT_TTL_HOURS', 24)
EMERGENCY_DEFAULT_RADIUS_KM = _env_float('EMERGENCY_DEFAULT_RADIUS_KM', 10.0)
EMERGENCY_MIN_RADIUS_KM = _env_float('EMERGENCY_MIN_RADIUS_KM', 1.0)
EMERGENCY_MAX_RADIUS_KM = _env_float('EMERGENCY_MAX_RADIUS_KM', 100.0)
EMERGENCY_CELL_PRECISION = _env_int('EMERGENCY_CELL_PRECISION', 5)
EMERGENCY_MAX_RING_EXPANSION = _env_int('EMERGENCY_MAX_RING_EXPANSION', 40)
EMERGENCY_EXPIRY_SWEEP_SECONDS = _env_int('EMERGENCY_EXPIRY_SWEEP_SECONDS', 300)
EMERGENCY_STORAGE_RETRY_ATTEMPTS = _env_int('EMERGENCY_STORAGE_RETRY_ATTEMPTS', 3)
EMERGENCY_STORAGE_RETRY_BACKOFF_SECONDS = _env_float('EMERGENCY_STORAGE_RETRY_BACKOFF_SECONDS', 0.2)


# AWS SNS (donor notification channel)
AWS_SNS_ENABLED = _env_bool('AWS_SNS_ENABLED', False)
AWS_SNS_REGION = os.getenv('AWS_SNS_REGION', 'us-east-1')
AWS_SNS_SMS_TYPE = os.getenv('AWS_SNS_SMS_TYPE', 'Transactional')
AWS_SNS_SENDER_ID = os.getenv('AWS_SNS_SENDER_ID', '')
AWS_SNS_DEFAULT_COUNTRY_CODE = os.getenv('AWS_SNS_DEFAULT_COUNTRY_CODE', '+1')
AWS_SNS_MAX_RECIPIENTS = _env_int('AWS_SNS_MAX_RECIPIENTS', 50)
AWS_SNS_MIN_NOTIFICATION_GAP_SECONDS = _env_int('AWS_SNS_MIN_NOTIFICATION_GAP_SECONDS', 900)


# Celery
CELERY_BROKER_URL = os.getenv('CELERY_BROKER_URL', 'redis://localhost:6379/0')
CELERY_RESULT_BACKEND = os.getenv('CELERY_RESULT_BACKEND', CELERY_BROKER_URL)
CELERY_TASK_ALWAYS_EAGER = _env_bool('CELERY_TASK_ALWAYS_EAGER', True)
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    'expire-stale-emergency-alerts': {
        'task': 'emergency.tasks.expire_stale_alerts',
        'schedule': float(EMERGENCY_EXPIRY_SWEEP_SECONDS),
    },
}
