"""
Idempotent Ledger: upvote and feedback facts.

A fact's document id is the composite of the subject and the actor, so a
client retrying the same action hits the same document instead of adding a
second one.

Upvotes come in two flavors sharing the session ``upvotes`` counter:

* ``PermanentVote`` (ranking view): one vote per user, never retracted. The
  fact and the counter increment are written in one transaction.
* ``ToggleableVote`` (browsing view): the second call retracts the vote. Fact
  and counter are two separate writes using atomic increments.
"""

import logging

from skillbridge import firestore_dao as dao
from skillbridge.errors import (
    AlreadyUpvoted, InvalidTransition, NotFound, PermissionDenied, ValidationError,
)
from skillbridge.firestore_models import (
    FEEDBACK_COMMENT_MAX, RATING_MAX, RATING_MIN, SESSION_APPROVED,
    SESSION_COMPLETED, SESSION_PENDING, SESSION_PROPOSED, VOTE_PERMANENT,
    VOTE_TOGGLEABLE, Feedback, Upvote, utcnow,
)
from skillbridge.services.guard import authorize
from skillbridge.services.notifier import publish
from skillbridge.services.session_lifecycle import derive_status
from skillbridge.store import DocumentExists, Increment, get_store

logger = logging.getLogger(__name__)

VOTABLE_STATUSES = (SESSION_PROPOSED, SESSION_PENDING, SESSION_APPROVED)


class VoteLedger:
    """Shared key layout and read helpers of the two upvote flavors."""

    flavor = None

    def fact_id(self, subject_id, user_id):
        raise NotImplementedError

    def has_voted(self, subject_id, user_id):
        return get_store().get(dao.SESSION_UPVOTES, self.fact_id(subject_id, user_id)) is not None

    def voted_subjects(self, user_id):
        """Ids of the sessions ``user_id`` has voted on with this flavor."""
        # older facts carry no flavor field, the id layout tells them apart
        return {
            fact['sessionId'] for fact in dao.get_upvotes_by_user(user_id)
            if fact.get('sessionId') and fact['id'] == self.fact_id(fact['sessionId'], user_id)
        }

    def _check_votable(self, session, subject_id):
        if session is None:
            raise NotFound('Session not found.', session_id=subject_id)
        status = derive_status(session)
        if status not in VOTABLE_STATUSES:
            raise InvalidTransition(f'A {status} session cannot be upvoted.', session_id=subject_id, status=status)

    def _fact(self, subject_id, actor, now):
        return Upvote(session_id=subject_id, user_id=actor.uid, flavor=self.flavor, created_at=now).to_dict()

    def _result(self, subject_id, upvoted):
        session = dao.get_session(subject_id) or {}
        result = {'session_id': subject_id, 'upvoted': upvoted, 'upvotes': session.get('upvotes') or 0}
        publish('session.upvotes', result, rooms=[f'session_{subject_id}'])
        return result


class PermanentVote(VoteLedger):

    flavor = VOTE_PERMANENT

    def fact_id(self, subject_id, user_id):
        return f'{subject_id}_{user_id}'

    def upvote(self, subject_id, actor):
        """Record the vote once. A repeat raises ``AlreadyUpvoted``."""
        authorize(actor, 'upvote')
        fact_id = self.fact_id(subject_id, actor.uid)
        now = utcnow()

        def vote(txn):
            session = txn.get(dao.SESSIONS, subject_id)
            self._check_votable(session, subject_id)
            if txn.get(dao.SESSION_UPVOTES, fact_id) is not None:
                raise AlreadyUpvoted(session_id=subject_id)
            txn.create(dao.SESSION_UPVOTES, fact_id, self._fact(subject_id, actor, now))
            txn.update(dao.SESSIONS, subject_id, {'upvotes': Increment(1)})

        get_store().run_transaction(vote)
        logger.info('User %s upvoted session %s', actor.uid, subject_id)
        return self._result(subject_id, True)


class ToggleableVote(VoteLedger):

    flavor = VOTE_TOGGLEABLE

    def fact_id(self, subject_id, user_id):
        return f'{user_id}_{subject_id}'

    def toggle(self, subject_id, actor):
        """Add the vote, or retract it when it already exists."""
        authorize(actor, 'upvote')
        store = get_store()
        fact_id = self.fact_id(subject_id, actor.uid)

        session = store.get(dao.SESSIONS, subject_id)
        if self.has_voted(subject_id, actor.uid):
            if session is None:
                raise NotFound('Session not found.', session_id=subject_id)
            store.delete(dao.SESSION_UPVOTES, fact_id)
            store.update(dao.SESSIONS, subject_id, {'upvotes': Increment(-1)})
            logger.info('User %s withdrew upvote on session %s', actor.uid, subject_id)
            return self._result(subject_id, False)

        self._check_votable(session, subject_id)
        try:
            store.create(dao.SESSION_UPVOTES, fact_id, self._fact(subject_id, actor, utcnow()))
        except DocumentExists:
            # a concurrent toggle wrote the fact first and owns the increment
            logger.info('User %s already upvoted session %s (toggleable)', actor.uid, subject_id)
            return self._result(subject_id, True)
        store.update(dao.SESSIONS, subject_id, {'upvotes': Increment(1)})
        logger.info('User %s upvoted session %s (toggleable)', actor.uid, subject_id)
        return self._result(subject_id, True)


permanent_votes = PermanentVote()
toggleable_votes = ToggleableVote()


# ---------------------------------------------------------------------------
# Feedback
# ---------------------------------------------------------------------------

def _validate_feedback(rating, comment):
    errors = {}
    if isinstance(rating, str) and rating.strip().isdigit():
        rating = int(rating.strip())
    if rating is None or rating == '':
        errors['rating'] = ['Please select a rating.']
    elif isinstance(rating, bool) or not isinstance(rating, int) or not RATING_MIN <= rating <= RATING_MAX:
        errors['rating'] = [f'Rating must be a whole number from {RATING_MIN} to {RATING_MAX}.']

    comment = (comment or '').strip()
    if len(comment) > FEEDBACK_COMMENT_MAX:
        errors['comment'] = [f'Comment must be at most {FEEDBACK_COMMENT_MAX} characters.']

    if errors:
        raise ValidationError(errors=errors)
    return rating, comment


def submit_feedback(session_id, actor, rating, comment=''):
    """Rate a completed session the actor attended.

    A second submission overwrites the first; ``createdAt`` is kept.
    """
    authorize(actor, 'give_feedback')
    rating, comment = _validate_feedback(rating, comment)

    session = dao.get_session(session_id)
    if not session:
        raise NotFound('Session not found.', session_id=session_id)
    registration = dao.get_registration(session_id, actor.uid)
    if not registration or registration.get('cancelled') is True:
        raise PermissionDenied('Only registered attendees can leave feedback.', session_id=session_id)
    status = derive_status(session)
    if status != SESSION_COMPLETED:
        raise InvalidTransition('Feedback opens once the session has taken place.', session_id=session_id, status=status)

    fact_id = dao.feedback_id(session_id, actor.uid)
    now = utcnow()

    def upsert(txn):
        existing = txn.get(dao.FEEDBACK, fact_id)
        fact = Feedback(
            session_id=session_id,
            attendee_id=actor.uid,
            attendee_name=registration.get('attendeeName') or actor.display_name,
            rating=rating,
            comment=comment,
            created_at=existing.get('createdAt') if existing else now,
            updated_at=now,
        )
        txn.set(dao.FEEDBACK, fact_id, fact.to_dict())
        return existing is not None

    updated = get_store().run_transaction(upsert)
    logger.info('Feedback %s by %s for session %s', 'updated' if updated else 'added', actor.uid, session_id)

    feedback = dao.get_feedback(session_id, actor.uid)
    publish('feedback.submitted', {'session_id': session_id, 'rating': rating}, rooms=[f'session_{session_id}'])
    return {'feedback': feedback, 'updated': updated}
