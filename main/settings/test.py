import os
import tempfile

from .base import *  # noqa: F403

SECRET_KEY = 'test-secret-key'

# PostgreSQL when a test database is configured, otherwise a file SQLite database
# whose transactions start with BEGIN IMMEDIATE
if os.getenv('POSTGRES_DB'):
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.postgresql',
            'NAME': os.getenv('POSTGRES_DB'),
            'USER': os.getenv('POSTGRES_USER', 'tripsettle'),
            'PASSWORD': os.getenv('POSTGRES_PASSWORD', 'tripsettle'),
            'HOST': os.getenv('DB_HOST', 'localhost'),
            'PORT': os.getenv('DB_PORT', '5432'),
        }
    }

    worker = os.getenv('PYTEST_XDIST_WORKER')
    if worker:
        DATABASES['default']['NAME'] = f"{DATABASES['default']['NAME']}_{worker}"
else:
    DATABASES = {
        'default': {
            'ENGINE': 'django.db.backends.sqlite3',
            'NAME': os.path.join(tempfile.gettempdir(), 'tripsettle.sqlite3'),
            'OPTIONS': {'transaction_mode': 'IMMEDIATE', 'timeout': 30},
            'TEST': {'NAME': os.path.join(tempfile.gettempdir(), 'test_tripsettle.sqlite3')},
        }
    }

DEBUG = False

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

STORAGES = {
    'default': {'BACKEND': 'django.core.files.storage.InMemoryStorage'},
    'staticfiles': {'BACKEND': 'django.contrib.staticfiles.storage.StaticFilesStorage'},
}

LOGGING = {
    'version': 1,
    'disable_existing_loggers': False,
    'handlers': {
        'console': {
            'class': 'logging.StreamHandler',
        },
    },
    'root': {
        'handlers': ['console'],
        'level': 'WARN',
    },
}
