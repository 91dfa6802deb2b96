"""
Counter Reconciler.

Two strategies maintain the derived counters on session documents:

``recompute``
    Read every ledger fact for the session and write the count back. Used for
    ``attendeeCount`` because registrations are cancelled and re-activated,
    and a recompute forgets a cancelled fact without a matching decrement.
    Concurrent recomputes can leave the count transiently wrong; the next
    mutation, the registration watcher or ``flask lifecycle
    reconcile-counters`` repairs it.

``atomic_increment``
    Apply ``Increment(+1/-1)`` in the same call that records or removes the
    fact. Used for ``upvotes``. Race-free for the permanent flavor; the
    toggleable flavor can double-decrement when two retractions interleave,
    which the reconcile job repairs by recounting.
"""

import logging

from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

from skillbridge import firestore_dao as dao
from skillbridge.store import StoreError, StoreUnavailable

logger = logging.getLogger(__name__)

RECOMPUTE = 'recompute'
ATOMIC_INCREMENT = 'atomic_increment'

# field on the session document: strategy maintaining it
COUNTER_STRATEGIES = {
    'attendeeCount': RECOMPUTE,
    'upvotes': ATOMIC_INCREMENT,
}

_store_retry = retry(
    stop=stop_after_attempt(3),
    wait=wait_exponential(multiplier=0.1, max=2),
    retry=retry_if_exception_type(StoreUnavailable),
    reraise=True,
)


def count_active_registrations(registrations):
    """Distinct attendees with a non-cancelled registration."""
    attendees = set()
    for reg in registrations:
        if not reg or reg.get('cancelled') is True:
            continue
        attendee_id = reg.get('attendeeId')
        if not isinstance(attendee_id, str) or not attendee_id.strip():
            continue
        attendees.add(attendee_id.strip())
    return len(attendees)


@_store_retry
def reconcile_attendee_count(session_id):
    """Recompute ``attendeeCount`` from the registration ledger and store it."""
    count = count_active_registrations(dao.get_registrations_by_session(session_id))
    dao.update_session(session_id, {'attendeeCount': count})
    logger.debug('Session %s attendeeCount=%s', session_id, count)
    return count


@_store_retry
def reconcile_upvotes(session_id):
    """Recount ``upvotes`` from the upvote ledger, both flavors included."""
    count = len(dao.get_upvotes_by_session(session_id))
    dao.update_session(session_id, {'upvotes': count})
    logger.debug('Session %s upvotes=%s', session_id, count)
    return count


def refresh_attendee_count(session_id):
    """Recompute after a registration change; failures wait for the next one."""
    try:
        return reconcile_attendee_count(session_id)
    except StoreError:
        logger.warning('Could not reconcile attendeeCount for session %s', session_id, exc_info=True)
        return None


def reconcile_session(session_id):
    """Recompute every counter of one session. Returns the stored values."""
    return {
        'attendeeCount': reconcile_attendee_count(session_id),
        'upvotes': reconcile_upvotes(session_id),
    }


def reconcile_all(session_id=None):
    """Recompute counters for one session, or for every session.

    Returns ``{session_id: {counter: value}}`` for the sessions whose stored
    counters changed.
    """
    if session_id:
        session = dao.get_session(session_id)
        sessions = [session] if session else []
    else:
        sessions = dao.get_all_sessions()

    repaired = {}
    for session in sessions:
        values = reconcile_session(session['id'])
        before = {field: session.get(field) or 0 for field in COUNTER_STRATEGIES}
        if values != before:
            logger.info('Repaired counters for session %s: %s -> %s', session['id'], before, values)
            repaired[session['id']] = values
    return repaired


def handle_registration_changes(changes):
    """Watch callback: recompute attendee counts for every touched session."""
    session_ids = {c.document.get('sessionId') for c in changes if c.document.get('sessionId')}
    for session_id in sorted(session_ids):
        refresh_attendee_count(session_id)


def start_watchers(store):
    """Subscribe the registration watcher. Returns the unsubscribe functions."""
    logger.info('Starting registration watcher')
    return [store.watch(dao.REGISTRATIONS, handle_registration_changes)]
