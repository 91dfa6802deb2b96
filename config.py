import os
from dotenv import load_dotenv

load_dotenv()


def _env_flag(name, default='false'):
    return os.environ.get(name, default).lower() in ('true', '1', 'yes')


class Config:
    SECRET_KEY = os.environ.get('SESSION_SECRET') or os.environ.get('SECRET_KEY') or 'dev-secret-key-change-in-production'
    WTF_CSRF_ENABLED = True
    WTF_CSRF_TIME_LIMIT = None

    GOOGLE_APPLICATION_CREDENTIALS = os.environ.get('GOOGLE_APPLICATION_CREDENTIALS', './firebase-service-account.json')
    FIREBASE_PROJECT_ID = os.environ.get('FIREBASE_PROJECT_ID', '')

    # 'firestore' in production, 'memory' for local development and tests
    STORE_BACKEND = os.environ.get('STORE_BACKEND', 'firestore')

    SOCKETIO_ASYNC_MODE = os.environ.get('SOCKETIO_ASYNC_MODE', 'eventlet')
    CORS_ALLOWED_ORIGINS = os.environ.get('CORS_ALLOWED_ORIGINS', '')

    PAYMENT_GATEWAY = os.environ.get('PAYMENT_GATEWAY', 'simulated')
    PAYMENT_SIMULATED_DELAY = float(os.environ.get('PAYMENT_SIMULATED_DELAY', '0'))

    REGISTRATION_SOFT_DELETE = _env_flag('REGISTRATION_SOFT_DELETE', 'true')
    RECONCILE_ON_CHANGE = _env_flag('RECONCILE_ON_CHANGE')
    INTERVIEW_TIMEZONE = os.environ.get('INTERVIEW_TIMEZONE', 'UTC')

    LOG_CONFIG = os.environ.get('LOG_CONFIG', 'logging.yaml')
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestConfig(Config):
    TESTING = True
    SECRET_KEY = 'test-secret-key'
    WTF_CSRF_ENABLED = False
    STORE_BACKEND = 'memory'
    SOCKETIO_ASYNC_MODE = 'threading'
    PAYMENT_SIMULATED_DELAY = 0.0
    REGISTRATION_SOFT_DELETE = True
    RECONCILE_ON_CHANGE = False
    INTERVIEW_TIMEZONE = 'UTC'
    LOG_CONFIG = None
