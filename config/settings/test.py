"""
RepairShop — Test Settings

SQLite by default so the suite runs anywhere; set DATABASE_URL to run it
against PostgreSQL instead. The SQLite test database is a file, so the
threads of the concurrency tests share it.
Activated by:
  DJANGO_SETTINGS_MODULE=config.settings.test

@file config/settings/test.py
"""

from .base import *  # noqa: F401, F403

DEBUG = False

DATABASES = {
    'default': env.db('DATABASE_URL', default='sqlite:///:memory:'),  # noqa: F405
}

if DATABASES['default']['ENGINE'] == 'django.db.backends.sqlite3':
    DATABASES['default'].setdefault('OPTIONS', {}).update(SQLITE_OPTIONS)  # noqa: F405
    DATABASES['default']['TEST'] = {
        'NAME': env('TEST_SQLITE_NAME', default=str(BASE_DIR / '.test-db.sqlite3')),  # noqa: F405
    }

PASSWORD_HASHERS = ['django.contrib.auth.hashers.MD5PasswordHasher']

CACHES = {
    'default': {
        'BACKEND': 'django.core.cache.backends.locmem.LocMemCache',
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = False
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

REST_FRAMEWORK['DEFAULT_THROTTLE_CLASSES'] = []  # noqa: F405

LOGGING['loggers']['repairshop']['level'] = 'WARNING'  # noqa: F405
LOGGING['loggers']['repairshop']['propagate'] = True  # noqa: F405
