"""Role-gated checks consulted by the lifecycle services before any write."""

import logging

from skillbridge.errors import NotAuthenticated, PermissionDenied
from skillbridge.firestore_models import ROLE_FACULTY, ROLE_SPEAKER, ROLE_STUDENT

logger = logging.getLogger(__name__)

# action: roles allowed to perform it
ACTION_ROLES = {
    'propose_session': (ROLE_STUDENT, ROLE_FACULTY, ROLE_SPEAKER),
    'decide_session': (ROLE_FACULTY,),
    'register': (ROLE_STUDENT,),
    'unregister': (ROLE_STUDENT,),
    'upvote': (ROLE_STUDENT, ROLE_FACULTY, ROLE_SPEAKER),
    'give_feedback': (ROLE_STUDENT,),
    'submit_speaker_proposal': (ROLE_STUDENT,),
    'review_speaker_proposal': (ROLE_FACULTY,),
    'view_attendees': (ROLE_FACULTY, ROLE_SPEAKER, ROLE_STUDENT),
    'request_topic': (ROLE_STUDENT,),
    'view_topic_requests': (ROLE_SPEAKER, ROLE_FACULTY),
}


def require_authenticated(actor):
    if actor is None or not actor.is_authenticated:
        raise NotAuthenticated()
    return actor


def authorize(actor, action):
    """Raise PermissionDenied unless ``actor`` may perform ``action``."""
    require_authenticated(actor)
    roles = ACTION_ROLES[action]
    if actor.role not in roles:
        logger.warning('Permission denied: %s (%s) attempted %s', actor.uid, actor.role, action)
        raise PermissionDenied(
            f"Only {' or '.join(roles)} accounts can do this. Your current role: {actor.role or 'not set'}"
        )
    if actor.role == ROLE_FACULTY and not actor.is_approved:
        logger.warning('Permission denied: unapproved faculty %s attempted %s', actor.uid, action)
        raise PermissionDenied('Faculty account not approved yet.')
    return actor


def can_view_attendees(actor, session):
    """Faculty and the session's author see the attendee list."""
    if actor is None or not actor.is_authenticated:
        return False
    if actor.role == ROLE_FACULTY and actor.is_approved:
        return True
    return session.get('authorId') == actor.uid
