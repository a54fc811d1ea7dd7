"""
Django settings for the NDA Checker backend.

Values that differ between deployments are read from the environment; a local
``.env`` file is loaded first if present.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

BASE_DIR = Path(__file__).resolve().parent.parent

load_dotenv(BASE_DIR.parent / '.env')
load_dotenv(BASE_DIR / '.env')

SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'django-insecure-nda-checker-development-key')

DEBUG = os.getenv('DJANGO_DEBUG', 'true').lower() == 'true'

ALLOWED_HOSTS = [host.strip() for host in os.getenv('DJANGO_ALLOWED_HOSTS', 'localhost,127.0.0.1,testserver').split(',') if host.strip()]


# ============================================
# APPLICATION DEFINITION
# ============================================

INSTALLED_APPS = [
    'django.contrib.contenttypes',
    'django.contrib.auth',
    'django.contrib.sessions',
    'rest_framework',
    'utils',
    'documents',
    'analysis',
    'comparison',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
]

ROOT_URLCONF = 'nda_checker.urls'

WSGI_APPLICATION = 'nda_checker.wsgi.application'

# No persistence layer: the database only backs Django's own bookkeeping.
DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': BASE_DIR / 'db.sqlite3',
    }
}

# Comparison results live in the session, and the session lives in the cache,
# so a restart forgets everything.
CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'nda-checker',
    }
}

SESSION_ENGINE = 'django.contrib.sessions.backends.cache'
SESSION_COOKIE_AGE = 60 * 60  # 1 hour

REST_FRAMEWORK = {
    'DEFAULT_AUTHENTICATION_CLASSES': [],
    'DEFAULT_PERMISSION_CLASSES': [
        'rest_framework.permissions.AllowAny',
    ],
    'DEFAULT_RENDERER_CLASSES': [
        'rest_framework.renderers.JSONRenderer',
    ],
    'UNAUTHENTICATED_USER': None,
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'


# ============================================
# UPSTAGE CONFIGURATION
# ============================================

# Shared by Document Parse and Solar chat completions. Missing key is a fatal
# configuration error at call time.
UPSTAGE_API_KEY = os.getenv('UPSTAGE_API_KEY', '')

UPSTAGE_MODEL = os.getenv('UPSTAGE_MODEL', 'solar-pro2-preview')

UPSTAGE_BASE_URL = os.getenv('UPSTAGE_BASE_URL', 'https://api.upstage.ai/v1')

# Seconds
UPSTAGE_TIMEOUT = float(os.getenv('UPSTAGE_TIMEOUT', '120'))


# ============================================
# NDA CHECKER CONFIGURATION
# ============================================

NDA_MAX_UPLOAD_BYTES = int(os.getenv('NDA_MAX_UPLOAD_BYTES', str(50 * 1024 * 1024)))

# Where the compare_ndas command finds the running service
NDA_CHECKER_BASE_URL = os.getenv('NDA_CHECKER_BASE_URL', 'http://localhost:8000')

DATA_UPLOAD_MAX_MEMORY_SIZE = NDA_MAX_UPLOAD_BYTES

# TrueType font for the PDF report; needed for Korean text
NDA_REPORT_FONT_PATH = os.getenv('NDA_REPORT_FONT_PATH', '')


# ============================================
# LOGGING CONFIGURATION
# ============================================

LOG_LEVEL = os.getenv('DJANGO_LOG_LEVEL', 'INFO')

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'formatters': {
        'standard': {
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        },
    },
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
            'formatter': 'standard',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': LOG_LEVEL,
    },
    'loggers': {
        'django': {
            'handlers': ['console'],
            'level': 'WARNING',
            'propagate': False,
        },
    },
}
