"""
Firestore Data Access Object (DAO) layer.

Collection-level reads and writes for the lifecycle services. Service and
route modules call functions from this module instead of talking to the
store directly; transactional code uses the collection names and id helpers
defined here together with ``get_store().run_transaction``.
"""

from skillbridge.firestore_models import (
    SESSION_PROPOSED, utcnow,
)
from skillbridge.store import get_store


USERS = 'users'
SESSIONS = 'sessions'
SPEAKER_PROPOSALS = 'speakerProposals'
REGISTRATIONS = 'registrations'
SESSION_UPVOTES = 'sessionUpvotes'
FEEDBACK = 'feedback'
STUDENT_REQUESTS = 'studentRequests'


def _now():
    return utcnow()


# ========================================================================
# Users  (collection: users)
# ========================================================================

def get_user(uid):
    """Get a user profile by UID. Returns dict or None."""
    return get_store().get(USERS, uid)


def get_user_by_email(email):
    """Get a user by email address. Returns dict or None."""
    if not email:
        return None
    docs = get_store().query(USERS, [('email', '==', email)], limit=1)
    for doc in docs:
        return doc
    return None


def create_user(uid, data):
    """Create a user document with the given UID as the document ID."""
    data.setdefault('uid', uid)
    data.setdefault('createdAt', _now())
    get_store().set(USERS, uid, data)


# ========================================================================
# Sessions  (collection: sessions)
# ========================================================================

def get_session(session_id):
    """Get a session by ID. Returns dict or None."""
    return get_store().get(SESSIONS, session_id)


def create_session(data):
    """Create a new session. Returns the generated doc ID."""
    data.setdefault('createdAt', _now())
    return get_store().add(SESSIONS, data)


def update_session(session_id, data):
    """Update fields on an existing session."""
    get_store().update(SESSIONS, session_id, data)


def get_sessions_by_status(status):
    """Get sessions with the given stored status, newest first."""
    return get_store().query(
        SESSIONS, [('status', '==', status)], order_by='createdAt', descending=True
    )


def get_sessions_by_author(author_id):
    """Get all sessions created by a user."""
    return get_store().query(
        SESSIONS, [('authorId', '==', author_id)], order_by='createdAt', descending=True
    )


def get_proposed_topics():
    """Get student-suggested topics (status 'proposed')."""
    return get_store().query(SESSIONS, [('status', '==', SESSION_PROPOSED)])


def get_all_sessions():
    return get_store().query(SESSIONS, order_by='createdAt', descending=True)


# ========================================================================
# Speaker proposals  (collection: speakerProposals)
# ========================================================================

def proposal_id(student_id, submitted_at):
    """Composite id: student UID + submission time in epoch milliseconds."""
    return f"{student_id}_{int(submitted_at.timestamp() * 1000)}"


def get_proposal(doc_id):
    """Get a speaker proposal by ID. Returns dict or None."""
    return get_store().get(SPEAKER_PROPOSALS, doc_id)


def create_proposal(doc_id, data):
    """Create a speaker proposal under a composite ID."""
    data.setdefault('createdAt', _now())
    get_store().create(SPEAKER_PROPOSALS, doc_id, data)
    return doc_id


def get_all_proposals():
    return get_store().query(SPEAKER_PROPOSALS, order_by='createdAt', descending=True)


def get_proposals_by_student(student_id):
    """Get all applications submitted by a student, newest first."""
    return get_store().query(
        SPEAKER_PROPOSALS, [('studentId', '==', student_id)], order_by='createdAt', descending=True
    )


# ========================================================================
# Registrations  (collection: registrations)
# ========================================================================

def registration_id(session_id, attendee_id):
    return f"{session_id}_{attendee_id}"


def get_registration(session_id, attendee_id):
    """Get a registration by composite key. Returns dict or None."""
    return get_store().get(REGISTRATIONS, registration_id(session_id, attendee_id))


def get_registrations_by_session(session_id):
    """Get every registration fact for a session, cancelled ones included."""
    return get_store().query(REGISTRATIONS, [('sessionId', '==', session_id)])


def get_registrations_by_user(attendee_id):
    """Get every registration fact for a user, cancelled ones included."""
    return get_store().query(REGISTRATIONS, [('attendeeId', '==', attendee_id)])


# ========================================================================
# Upvotes  (collection: sessionUpvotes)
# ========================================================================

def get_upvotes_by_session(session_id):
    return get_store().query(SESSION_UPVOTES, [('sessionId', '==', session_id)])


def get_upvotes_by_user(user_id):
    return get_store().query(SESSION_UPVOTES, [('userId', '==', user_id)])


# ========================================================================
# Feedback  (collection: feedback)
# ========================================================================

def feedback_id(session_id, attendee_id):
    return f"{session_id}_{attendee_id}"


def get_feedback(session_id, attendee_id):
    """Get one attendee's feedback for a session. Returns dict or None."""
    return get_store().get(FEEDBACK, feedback_id(session_id, attendee_id))


def get_feedback_by_session(session_id):
    """Get all feedback for a session."""
    return get_store().query(FEEDBACK, [('sessionId', '==', session_id)])



# ========================================================================
# Topic requests  (collection: studentRequests)
# ========================================================================

def topic_request_id(student_id, requested_at):
    """Composite id: student UID + request time in epoch milliseconds."""
    return f"{student_id}_{int(requested_at.timestamp() * 1000)}"


def get_topic_request(doc_id):
    return get_store().get(STUDENT_REQUESTS, doc_id)


def create_topic_request(doc_id, data):
    data.setdefault('createdAt', _now())
    get_store().create(STUDENT_REQUESTS, doc_id, data)
    return doc_id


def get_all_topic_requests():
    """Get every topic request, newest first."""
    return get_store().query(STUDENT_REQUESTS, order_by='createdAt', descending=True)


def get_topic_requests_by_student(student_id):
    return get_store().query(
        STUDENT_REQUESTS, [('studentId', '==', student_id)], order_by='createdAt', descending=True
    )
