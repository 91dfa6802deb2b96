"""
Session State Machine.

Stored statuses move ``proposed|pending -> approved|rejected`` through faculty
decisions. ``completed`` is reached by time alone: ``derive_status`` reports
an approved session whose date has passed as completed, and
``complete_elapsed_sessions`` persists that same projection. Every reader goes
through ``derive_status`` so listings, detail views and preconditions agree.
"""

import logging
from datetime import datetime, timezone
from numbers import Number

from skillbridge import firestore_dao as dao
from skillbridge.errors import BulkTransitionError, InvalidTransition, NotFound, ValidationError
from skillbridge.firestore_models import (
    ROLE_STUDENT, SESSION_APPROVED, SESSION_COMPLETED, SESSION_PENDING,
    SESSION_PROPOSED, SESSION_REJECTED, SESSION_TRANSITIONS, Session,
    can_transition, parse_datetime, utcnow,
)
from skillbridge.services import ratings
from skillbridge.services.guard import authorize, can_view_attendees, require_authenticated
from skillbridge.services.notifier import publish
from skillbridge.store import get_store

logger = logging.getLogger(__name__)

MAX_BULK_IDS = 500

# what signed-out visitors may list or open
PUBLIC_STATUSES = (SESSION_PROPOSED, SESSION_APPROVED, SESSION_COMPLETED)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def derive_status(session, now=None):
    """Status as every reader must see it."""
    status = session.get('status')
    if status == SESSION_APPROVED:
        date = parse_datetime(session.get('date'))
        if date is not None and date < (now or utcnow()):
            return SESSION_COMPLETED
    return status


def load_session(session_id):
    session = dao.get_session(session_id) if session_id else None
    if not session:
        raise NotFound('Session not found.', session_id=session_id)
    return session


def _session_rooms(session):
    rooms = [f"session_{session['id']}", 'faculty']
    if session.get('authorId'):
        rooms.append(f"user_{session['authorId']}")
    return rooms


# ---------------------------------------------------------------------------
# Proposals
# ---------------------------------------------------------------------------

def _validate_proposal(title, date, max_attendees, price):
    errors = {}
    title = (title or '').strip()
    if not title:
        errors['title'] = ['Title is required.']

    parsed_date = None
    if date not in (None, ''):
        parsed_date = parse_datetime(date)
        if parsed_date is None:
            errors['date'] = ['Date must be an ISO 8601 timestamp.']

    if max_attendees in ('', None):
        max_attendees = None
    elif isinstance(max_attendees, bool) or not isinstance(max_attendees, int) or max_attendees < 1:
        errors['max_attendees'] = ['Maximum attendees must be a whole number of at least 1.']

    if price in ('', None):
        price = 0
    elif isinstance(price, bool) or not isinstance(price, Number) or price < 0:
        errors['price'] = ['Price cannot be negative.']

    if errors:
        raise ValidationError(errors=errors)
    return title, parsed_date, max_attendees, price


def propose_session(actor, title, description='', date=None, max_attendees=None, price=0, tags=None):
    """Create a session.

    Students suggest a topic (``proposed``, no date) that others can upvote;
    faculty and speakers submit a concrete session (``pending``) for review.
    Returns the stored document.
    """
    authorize(actor, 'propose_session')
    title, date, max_attendees, price = _validate_proposal(title, date, max_attendees, price)

    is_topic = actor.role == ROLE_STUDENT
    session = Session(
        title=title,
        description=(description or '').strip(),
        author_id=actor.uid,
        author_name=actor.display_name,
        status=SESSION_PROPOSED if is_topic else SESSION_PENDING,
        created_at=utcnow(),
        date=None if is_topic else date,
        max_attendees=max_attendees,
        price=price,
        tags=[t.strip() for t in (tags or []) if t and t.strip()],
    )
    session_id = dao.create_session(session.to_dict())
    logger.info('Session %s created by %s as %s', session_id, actor.uid, session.status)

    stored = dao.get_session(session_id)
    publish('session.created', {'session': stored}, rooms=['faculty'])
    return stored


# ---------------------------------------------------------------------------
# Faculty decisions
# ---------------------------------------------------------------------------

def _require_reason(reason):
    if reason is None or not str(reason).strip():
        raise ValidationError(
            'Please provide a reason for rejection.',
            errors={'reason': ['A rejection reason is required.']},
        )
    # stored verbatim
    return reason


def _decision_fields(new_status, actor, now, reason=None):
    fields = {
        'status': new_status,
        'approvedBy': actor.uid,
        'approvedAt': now,
    }
    fields['rejectionReason'] = reason if new_status == SESSION_REJECTED else None
    return fields


def _ineligibility(session, new_status, now):
    """Reason ``session`` cannot move to ``new_status``, or None."""
    current = derive_status(session, now)
    if can_transition(SESSION_TRANSITIONS, current, new_status):
        return None
    return f'Session is {current} and cannot be {new_status}.'


def _decide(session_id, actor, new_status, reason=None):
    authorize(actor, 'decide_session')
    if new_status == SESSION_REJECTED:
        reason = _require_reason(reason)
    now = utcnow()

    def decide(txn):
        session = txn.get(dao.SESSIONS, session_id)
        if session is None:
            raise NotFound('Session not found.', session_id=session_id)
        problem = _ineligibility(session, new_status, now)
        if problem:
            raise InvalidTransition(problem, session_id=session_id, status=derive_status(session, now))
        txn.update(dao.SESSIONS, session_id, _decision_fields(new_status, actor, now, reason))
        return session['status']

    previous = get_store().run_transaction(decide)
    logger.info('Session %s %s -> %s by %s', session_id, previous, new_status, actor.uid)

    session = dao.get_session(session_id)
    publish(f'session.{new_status}', {'session': session}, rooms=_session_rooms(session))
    return session


def approve_session(session_id, actor):
    return _decide(session_id, actor, SESSION_APPROVED)


def reject_session(session_id, actor, reason):
    return _decide(session_id, actor, SESSION_REJECTED, reason)


def _normalize_ids(session_ids):
    ids = []
    for session_id in session_ids or []:
        session_id = (session_id or '').strip() if isinstance(session_id, str) else session_id
        if session_id and session_id not in ids:
            ids.append(session_id)
    if not ids:
        raise ValidationError('Select at least one session.', errors={'ids': ['No sessions selected.']})
    if len(ids) > MAX_BULK_IDS:
        raise ValidationError(
            f'At most {MAX_BULK_IDS} sessions can be updated at once.',
            errors={'ids': [f'{len(ids)} sessions selected.']},
        )
    return ids


def _bulk_decide(session_ids, actor, new_status, reason=None):
    """All-or-nothing decision over many sessions in one transaction."""
    authorize(actor, 'decide_session')
    if new_status == SESSION_REJECTED:
        reason = _require_reason(reason)
    ids = _normalize_ids(session_ids)
    now = utcnow()

    def decide_all(txn):
        failed = {}
        for session_id in ids:
            session = txn.get(dao.SESSIONS, session_id)
            if session is None:
                failed[session_id] = 'Session not found.'
                continue
            problem = _ineligibility(session, new_status, now)
            if problem:
                failed[session_id] = problem
        if failed:
            raise BulkTransitionError(failed)
        fields = _decision_fields(new_status, actor, now, reason)
        for session_id in ids:
            txn.update(dao.SESSIONS, session_id, fields)

    get_store().run_transaction(decide_all)
    logger.info('Bulk %s of %d sessions by %s', new_status, len(ids), actor.uid)

    sessions = [dao.get_session(session_id) for session_id in ids]
    for session in sessions:
        publish(f'session.{new_status}', {'session': session}, rooms=_session_rooms(session))
    return sessions


def bulk_approve(session_ids, actor):
    return _bulk_decide(session_ids, actor, SESSION_APPROVED)


def bulk_reject(session_ids, actor, reason):
    return _bulk_decide(session_ids, actor, SESSION_REJECTED, reason)


# ---------------------------------------------------------------------------
# Completion job
# ---------------------------------------------------------------------------

def complete_elapsed_sessions(now=None):
    """Persist ``approved -> completed`` for sessions whose date has passed.

    Safe to run concurrently and repeatedly: each write is a compare-and-set
    on the stored status, so a transition is written once. Returns the ids
    completed by this run.
    """
    now = now or utcnow()
    store = get_store()
    completed = []

    for candidate in dao.get_sessions_by_status(SESSION_APPROVED):
        if derive_status(candidate, now) != SESSION_COMPLETED:
            continue
        session_id = candidate['id']

        def complete(txn):
            session = txn.get(dao.SESSIONS, session_id)
            if session is None or session.get('status') != SESSION_APPROVED:
                return False
            if derive_status(session, now) != SESSION_COMPLETED:
                return False
            txn.update(dao.SESSIONS, session_id, {'status': SESSION_COMPLETED, 'completedAt': now})
            return True

        if store.run_transaction(complete):
            completed.append(session_id)
            logger.info('Session %s completed', session_id)
            publish('session.completed', {'session_id': session_id}, rooms=[f'session_{session_id}'])

    return completed


# ---------------------------------------------------------------------------
# Views
# ---------------------------------------------------------------------------

def session_view(session, now=None, viewer=None):
    """Session document as clients see it: derived status plus ratings."""
    view = dict(session)
    view['storedStatus'] = session.get('status')
    view['status'] = derive_status(session, now)
    summary = ratings.rating_summary(session['id'])
    view['averageRating'] = summary['averageRating']
    view['ratingCount'] = summary['ratingCount']
    if viewer is not None and viewer.is_authenticated:
        registration = dao.get_registration(session['id'], viewer.uid)
        view['isRegistered'] = bool(registration) and registration.get('cancelled') is not True
        view['canViewAttendees'] = can_view_attendees(viewer, session)
    return view


def _newest_first_key(session):
    return parse_datetime(session.get('createdAt')) or _EPOCH


def rank(sessions):
    """Upvotes descending, then newest first."""
    ordered = sorted(sessions, key=_newest_first_key, reverse=True)
    return sorted(ordered, key=lambda s: s.get('upvotes') or 0, reverse=True)


def ranked_topics():
    """Student-suggested topics for the ranking view."""
    return rank(dao.get_proposed_topics())


def is_public(session, now=None):
    return derive_status(session, now) in PUBLIC_STATUSES


def list_sessions(status=None, now=None, viewer=None):
    """Sessions filtered on their derived status, ranked like the topic view.

    Signed-out viewers only get proposed topics and approved or completed
    sessions.
    """
    now = now or utcnow()
    signed_in = viewer is not None and viewer.is_authenticated
    sessions = []
    for session in dao.get_all_sessions():
        derived = derive_status(session, now)
        if status and derived != status:
            continue
        if not signed_in and derived not in PUBLIC_STATUSES:
            continue
        sessions.append(session)
    return rank(sessions)


def my_sessions(actor, now=None):
    """The actor's own sessions, newest first, each with its reviews."""
    require_authenticated(actor)
    now = now or utcnow()
    views = []
    for session in dao.get_sessions_by_author(actor.uid):
        view = session_view(session, now, actor)
        view['reviews'] = ratings.list_reviews(session['id'])
        views.append(view)
    return views
