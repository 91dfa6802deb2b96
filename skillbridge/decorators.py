import logging
from functools import wraps
from flask import request, g, session
from firebase_admin import auth as firebase_auth
from skillbridge.errors import NotAuthenticated
from skillbridge.firebase_init import get_auth
from skillbridge import firestore_dao as dao

logger = logging.getLogger(__name__)

_CREDENTIAL_ERRORS = (
    ValueError,
    firebase_auth.InvalidIdTokenError,
    firebase_auth.InvalidSessionCookieError,
    firebase_auth.RevokedIdTokenError,
    firebase_auth.RevokedSessionCookieError,
    firebase_auth.CertificateFetchError,
    firebase_auth.UserDisabledError,
)


def bearer_token():
    header = request.headers.get('Authorization', '')
    if header.lower().startswith('bearer '):
        return header[7:].strip() or None
    return None


def _verify_request():
    """Verify the Firebase ID token (or session cookie) and load the profile."""
    auth = get_auth()
    try:
        token = bearer_token()
        if token:
            decoded = auth.verify_id_token(token, check_revoked=True)
        else:
            session_cookie = session.get('firebase_session')
            if not session_cookie:
                return None
            decoded = auth.verify_session_cookie(session_cookie, check_revoked=True)
    except _CREDENTIAL_ERRORS as e:
        logger.info('Rejected credentials: %s', e)
        return None

    uid = decoded['uid']
    user_data = dao.get_user(uid)
    if not user_data:
        return None

    user_data['uid'] = uid
    user_data['id'] = uid
    if not user_data.get('email'):
        user_data['email'] = decoded.get('email', '')
    return user_data


class CurrentUser:
    """Proxy object providing attribute access to the current user dict."""

    def __init__(self, data=None):
        self._data = data or {}

    def __getattr__(self, name):
        if name.startswith('_'):
            raise AttributeError(name)
        return self._data.get(name)

    def __getitem__(self, key):
        return self._data[key]

    def __contains__(self, key):
        return key in self._data

    def get(self, key, default=None):
        return self._data.get(key, default)

    @property
    def is_authenticated(self):
        return bool(self._data)

    @property
    def uid(self):
        return self._data.get('uid', '')

    @property
    def id(self):
        return self._data.get('uid', '')

    @property
    def role(self):
        return self._data.get('role', 'student')

    @property
    def is_approved(self):
        # Faculty accounts must be approved before they can act
        if self.role == 'faculty':
            return self._data.get('isApproved') is True
        return True

    @property
    def display_name(self):
        if self._data.get('displayName'):
            return self._data['displayName']
        if self._data.get('email'):
            return self._data['email']
        return f"User {self.uid[:8]}"

    @property
    def email(self):
        return self._data.get('email', '')


def load_current_user():
    """Resolve the request credentials into g before each request."""
    g._current_user = CurrentUser(_verify_request())


def clear_current_user(exc=None):
    # g outlives the request when an app context was already pushed
    g.pop('_current_user', None)
    g.pop('current_user', None)


def get_current_user():
    if not hasattr(g, '_current_user'):
        load_current_user()
    return g._current_user


def auth_required(f):
    @wraps(f)
    def decorated(*args, **kwargs):
        user = get_current_user()
        if not user.is_authenticated:
            raise NotAuthenticated()
        g.current_user = user
        return f(*args, **kwargs)
    return decorated

