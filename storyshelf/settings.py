import os
from pathlib import Path

BASE_DIR = Path(__file__).resolve().parent.parent


def env_bool(name, default=False):
    return os.getenv(name, str(int(default))).strip().lower() in ('1', 'true', 'yes', 'on')


def env_list(name, default):
    raw = os.getenv(name)
    if not raw:
        return list(default)
    return [item.strip() for item in raw.split(',') if item.strip()]


SECRET_KEY = os.getenv('DJANGO_SECRET_KEY', 'replace-me-in-production')
DEBUG = env_bool('DJANGO_DEBUG', default=True)
ALLOWED_HOSTS = env_list('DJANGO_ALLOWED_HOSTS', ['*'])

INSTALLED_APPS = [
    'django.contrib.admin',
    'django.contrib.auth',
    'django.contrib.contenttypes',
    'django.contrib.sessions',
    'django.contrib.messages',
    'django.contrib.staticfiles',
    'accounts',
    'catalog',
]

MIDDLEWARE = [
    'django.middleware.security.SecurityMiddleware',
    'django.contrib.sessions.middleware.SessionMiddleware',
    'django.middleware.common.CommonMiddleware',
    'django.contrib.auth.middleware.AuthenticationMiddleware',
    'django.contrib.messages.middleware.MessageMiddleware',
    'django.middleware.clickjacking.XFrameOptionsMiddleware',
    'accounts.middleware.TokenSessionMiddleware',
]

ROOT_URLCONF = 'storyshelf.urls'

# Only the Django admin renders templates; the storefront API speaks JSON.
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

WSGI_APPLICATION = 'storyshelf.wsgi.application'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': os.getenv('DJANGO_DB_PATH', str(BASE_DIR / 'db.sqlite3')),
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
        'LOCATION': 'storyshelf',
    }
}

LANGUAGE_CODE = 'en-us'
TIME_ZONE = 'UTC'
USE_I18N = True
USE_TZ = True

STATIC_URL = 'static/'
DEFAULT_AUTO_FIELD = 'django.db.models.BigAutoField'
AUTH_USER_MODEL = 'accounts.User'

# HTTPS enforcement is opt-in to avoid local runserver redirect loops.
FORCE_HTTPS = env_bool('DJANGO_FORCE_HTTPS', default=False)
if DEBUG and not env_bool('DJANGO_FORCE_HTTPS_IN_DEBUG', default=False):
    FORCE_HTTPS = False
SESSION_COOKIE_SECURE = FORCE_HTTPS
SECURE_SSL_REDIRECT = FORCE_HTTPS
SECURE_HSTS_SECONDS = 31536000 if FORCE_HTTPS else 0
SECURE_HSTS_INCLUDE_SUBDOMAINS = FORCE_HTTPS
SECURE_PROXY_SSL_HEADER = ('HTTP_X_FORWARDED_PROTO', 'https')
SESSION_COOKIE_HTTPONLY = True

TOKEN_SESSION_IDLE_TIMEOUT_SECONDS = int(os.getenv('TOKEN_SESSION_IDLE_TIMEOUT_SECONDS', '1800'))
IDENTITY_ASSERTION_MAX_AGE_SECONDS = int(os.getenv('IDENTITY_ASSERTION_MAX_AGE_SECONDS', '300'))
LOGIN_RATE_LIMIT_ATTEMPTS = 5
LOGIN_RATE_LIMIT_WINDOW_SECONDS = 300
LOGIN_RATE_LIMIT_LOCK_SECONDS = 900

CATALOG_DEFAULT_PAGE_SIZE = int(os.getenv('CATALOG_DEFAULT_PAGE_SIZE', '20'))
CATALOG_MAX_PAGE_SIZE = int(os.getenv('CATALOG_MAX_PAGE_SIZE', '100'))
TRENDING_DEFAULT_LIMIT = int(os.getenv('TRENDING_DEFAULT_LIMIT', '6'))
# 0 counts every detail fetch as a view.
BOOK_VIEW_DEDUP_WINDOW_SECONDS = int(os.getenv('BOOK_VIEW_DEDUP_WINDOW_SECONDS', '0'))

STRIPE_SECRET_KEY = os.getenv('STRIPE_SECRET_KEY', '')
PAYMENT_CURRENCY = os.getenv('PAYMENT_CURRENCY', 'usd')
PAYMENT_METHOD_TYPES = env_list('PAYMENT_METHOD_TYPES', ['card', 'cashapp'])

LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

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
    'root': {
        'handlers': ['console'],
        'level': 'WARNING',
    },
    'loggers': {
        'accounts': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
        'catalog': {'handlers': ['console'], 'level': LOG_LEVEL, 'propagate': False},
    },
}
