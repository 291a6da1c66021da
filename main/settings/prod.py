import os

from .base import *  # noqa: F403

DEBUG = False

SECRET_KEY = os.environ['SECRET_KEY']

ALLOWED_HOSTS = [host for host in os.getenv('ALLOWED_HOSTS', '').split(',') if host]

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.postgresql',
        'NAME': os.getenv('DB_NAME', 'tripsettle'),
        'USER': os.getenv('DB_USER', 'tripsettle'),
        'PASSWORD': os.getenv('DB_PASSWORD', ''),
        'HOST': os.getenv('DB_HOST', 'localhost'),
        'PORT': os.getenv('DB_PORT', '5432'),
        'CONN_MAX_AGE': 60,
    }
}

CACHES = {
    'default': {
        'BACKEND': 'django_redis.cache.RedisCache',
        'LOCATION': os.getenv('REDIS_URL', 'redis://redis:6379/1'),
        'OPTIONS': {
            "COMPRESSOR": "django_redis.compressors.zlib.ZlibCompressor",
            'SOCKET_TIMEOUT': 5,
        },
        "TIMEOUT": 3600 * 24 * 15,
    }
}

SESSION_COOKIE_SECURE = True

CSRF_COOKIE_SECURE = True
