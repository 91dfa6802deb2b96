" PyTest Config. This contains global-level pytest fixtures. "
import itertools
from datetime import datetime, timedelta, timezone

import pytest

from config import TestConfig
from skillbridge import create_app
from skillbridge import firestore_dao as dao
from skillbridge.decorators import CurrentUser
from skillbridge.firestore_models import (
    ROLE_FACULTY, ROLE_SPEAKER, ROLE_STUDENT, SESSION_APPROVED, Session, UserProfile,
)
from skillbridge.services.notifier import outcomes
from skillbridge.store import get_store

_ids = itertools.count(1)


class FakeAuth:
    """Stands in for ``firebase_admin.auth``: ``token-<uid>`` verifies as ``uid``."""

    def verify_id_token(self, token, check_revoked=False):
        if not token.startswith('token-'):
            raise ValueError('Invalid token')
        return {'uid': token[len('token-'):]}

    def verify_session_cookie(self, cookie, check_revoked=False):
        raise ValueError('Session cookies are not used in tests')


@pytest.fixture
def app(monkeypatch):
    """A fresh app on an empty in-memory store, inside an app context."""
    monkeypatch.setattr('skillbridge.decorators.get_auth', lambda: FakeAuth())
    app = create_app(TestConfig)
    with app.app_context():
        yield app
    outcomes.clear()


@pytest.fixture
def client(app):
    "Yield a test HTTP client for the app"
    yield app.test_client()


@pytest.fixture
def store(app):
    yield get_store()


@pytest.fixture
def published(app):
    "Capture outcomes published during the test."
    events = []
    outcomes.subscribe(lambda event, payload, rooms: events.append((event, payload, rooms)))
    yield events


@pytest.fixture
def make_user(app):
    def _make_user(role=ROLE_STUDENT, uid=None, email=None, approved=True, name=None):
        n = next(_ids)
        uid = uid or f'{role}-{n}'
        profile = UserProfile(
            uid=uid,
            display_name=name or f'{role.title()} {n}',
            email=email if email is not None else f'{uid}@example.com',
            role=role,
            is_approved=approved,
        )
        dao.create_user(uid, profile.to_dict())
        return CurrentUser(dict(profile.to_dict(), id=uid))

    return _make_user


@pytest.fixture
def faculty(make_user):
    return make_user(ROLE_FACULTY)


@pytest.fixture
def student(make_user):
    return make_user(ROLE_STUDENT)


@pytest.fixture
def speaker(make_user):
    return make_user(ROLE_SPEAKER)


@pytest.fixture
def make_session(app):
    """Write a session document directly, bypassing the workflow."""

    def _make_session(status=SESSION_APPROVED, date=None, days=7, **fields):
        if date is None and days is not None:
            date = datetime.now(timezone.utc) + timedelta(days=days)
        session = Session(
            title=fields.pop('title', 'Intro to Git'),
            author_id=fields.pop('author_id', 'speaker-author'),
            author_name='Session Author',
            status=status,
            date=date,
            created_at=fields.pop('created_at', datetime.now(timezone.utc)),
            **fields,
        )
        session_id = dao.create_session(session.to_dict())
        return dao.get_session(session_id)

    return _make_session
