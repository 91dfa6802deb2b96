"""
Topic requests: students ask for a session on a topic, speakers and faculty
browse the requests when planning what to offer next.

Unlike a proposed topic, a request is not a session and cannot be upvoted or
approved. It is kept in its own collection and only ever read back.
"""

import logging

from skillbridge import firestore_dao as dao
from skillbridge.errors import ValidationError
from skillbridge.firestore_models import (
    ROLE_STUDENT, TOPIC_REQUEST_DESCRIPTION_MAX, TOPIC_REQUEST_PENDING,
    TOPIC_REQUEST_TOPIC_MAX, TopicRequest, utcnow,
)
from skillbridge.services.guard import authorize, require_authenticated
from skillbridge.services.notifier import publish

logger = logging.getLogger(__name__)


def _validate(topic, description):
    errors = {}
    topic = (topic or '').strip()
    description = (description or '').strip()
    if not topic:
        errors['topic'] = ['Please provide a topic.']
    elif len(topic) > TOPIC_REQUEST_TOPIC_MAX:
        errors['topic'] = [f'Topic must be at most {TOPIC_REQUEST_TOPIC_MAX} characters.']
    if len(description) > TOPIC_REQUEST_DESCRIPTION_MAX:
        errors['description'] = [f'Description must be at most {TOPIC_REQUEST_DESCRIPTION_MAX} characters.']
    if errors:
        raise ValidationError(errors=errors)
    return topic, description


def submit_topic_request(actor, topic, description='', preferred_date=None):
    authorize(actor, 'request_topic')
    topic, description = _validate(topic, description)

    now = utcnow()
    topic_request = TopicRequest(
        student_id=actor.uid,
        student_name=actor.display_name,
        student_email=actor.email,
        topic=topic,
        description=description,
        preferred_date=(preferred_date or '').strip() or None,
        status=TOPIC_REQUEST_PENDING,
        created_at=now,
    )
    request_id = dao.create_topic_request(dao.topic_request_id(actor.uid, now), topic_request.to_dict())
    logger.info('Topic request %s filed by %s', request_id, actor.uid)

    stored = dao.get_topic_request(request_id)
    publish('topic_request.submitted', {'request': stored}, rooms=['faculty', 'speakers'])
    return stored


def list_topic_requests(actor):
    """Speakers and faculty see every request, newest first. Students see their own."""
    require_authenticated(actor)
    if actor.role == ROLE_STUDENT:
        return dao.get_topic_requests_by_student(actor.uid)
    authorize(actor, 'view_topic_requests')
    return dao.get_all_topic_requests()
