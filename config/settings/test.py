"""
Test settings for the booking dispatch project.
"""
from .base import *

DEBUG = False
SECRET_KEY = 'test-secret-key'

DATABASES = {
    'default': {
        'ENGINE': 'django.db.backends.sqlite3',
        'NAME': ':memory:',
    }
}

EMAIL_BACKEND = 'django.core.mail.backends.locmem.EmailBackend'
DEFAULT_FROM_EMAIL = 'bookings@example.com'

BASE_URL = 'http://testserver'
SITE_NAME = 'Booking Dispatch'

DISPATCH_SAME_DAY_TIMEOUT_MINUTES = 60
DISPATCH_STANDARD_TIMEOUT_MINUTES = 240
DISPATCH_UPDATE_GRACE_MINUTES = 2
DISPATCH_CONFLICT_BUFFER_MINUTES = 15
DISPATCH_EXCLUDED_REFERENCE_PREFIX = 'BK-Q'
DISPATCH_DEFAULT_TIMEZONE = 'UTC'
DISPATCH_OPS_EMAIL = ''
DISPATCH_OPS_PHONE = ''

TWILIO_ACCOUNT_SID = ''
TWILIO_AUTH_TOKEN = ''
TWILIO_PHONE_NUMBER = ''
STRIPE_SECRET_KEY = ''

CELERY_TASK_ALWAYS_EAGER = True
CELERY_TASK_EAGER_PROPAGATES = True
CELERY_BROKER_URL = 'memory://'
CELERY_RESULT_BACKEND = 'cache+memory://'

LOGGING['handlers']['console']['level'] = 'WARNING'
