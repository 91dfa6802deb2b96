"""
Speaker Proposal Workflow.

A student applies to become a speaker; faculty review the application, hold
an interview and take a final decision. ``interview_completed`` is never
stored: a scheduled proposal whose interview time has passed is reported as
such by ``derive_proposal_status``. A final approval promotes the applicant's
profile to the speaker role in the same transaction that records the
decision, so a proposal can promote at most one profile once.
"""

import logging
from datetime import datetime
from zoneinfo import ZoneInfo

from flask import current_app, has_app_context

from skillbridge import firestore_dao as dao
from skillbridge.errors import (
    AlreadyFinalized, InvalidTransition, NotFound, PermissionDenied,
    PromotionTargetNotFound, ValidationError,
)
from skillbridge.firestore_models import (
    PROPOSAL_APPROVED, PROPOSAL_FINAL_APPROVED, PROPOSAL_FINAL_DISAPPROVED,
    PROPOSAL_FINAL_STATES, PROPOSAL_INTERVIEW_COMPLETED, PROPOSAL_PENDING,
    PROPOSAL_REJECTED, PROPOSAL_SCHEDULED, PROPOSAL_TRANSITIONS, ROLE_FACULTY,
    ROLE_SPEAKER, ROLE_STUDENT, SpeakerProposal, can_transition, parse_datetime, utcnow,
)
from skillbridge.services.guard import authorize, require_authenticated
from skillbridge.services.notifier import publish
from skillbridge.store import get_store

logger = logging.getLogger(__name__)

INTERVIEW_FORMAT = '%Y-%m-%d %H:%M'

# a speaker profile is only matched so it is not promoted twice
PROMOTABLE_ROLES = (ROLE_STUDENT, ROLE_SPEAKER)


def derive_proposal_status(proposal, now=None):
    status = proposal.get('status')
    if status == PROPOSAL_SCHEDULED:
        when = parse_datetime(proposal.get('interviewTimestamp'))
        if when is not None and when < (now or utcnow()):
            return PROPOSAL_INTERVIEW_COMPLETED
    return status


def proposal_view(proposal, now=None):
    view = dict(proposal)
    view['storedStatus'] = proposal.get('status')
    view['status'] = derive_proposal_status(proposal, now)
    return view


def _rooms(proposal):
    rooms = ['faculty']
    if proposal.get('studentId'):
        rooms.append(f"user_{proposal['studentId']}")
    return rooms


def _required(value, field, message):
    if value is None or not str(value).strip():
        raise ValidationError(message, errors={field: [message]})
    return value


def _interview_timezone():
    name = 'UTC'
    if has_app_context():
        name = current_app.config.get('INTERVIEW_TIMEZONE') or 'UTC'
    return ZoneInfo(name)


def interview_timestamp(date, time):
    """Combine ``YYYY-MM-DD`` and ``HH:MM`` in the configured timezone."""
    try:
        naive = datetime.strptime(f'{date.strip()} {time.strip()}', INTERVIEW_FORMAT)
    except ValueError:
        raise ValidationError(
            'Interview date must be YYYY-MM-DD and time HH:MM.',
            errors={'interview_date': ['Use YYYY-MM-DD.'], 'interview_time': ['Use HH:MM.']},
        )
    return naive.replace(tzinfo=_interview_timezone())


# ---------------------------------------------------------------------------
# Submission and reads
# ---------------------------------------------------------------------------

def submit_proposal(actor, year, resume, name=None, email=None, linkedin='', phone=''):
    """File a new application. Students may apply again after a decision."""
    authorize(actor, 'submit_speaker_proposal')
    _required(year, 'year', 'Please select your year.')
    _required(resume, 'resume', 'Please provide a link to your resume.')

    now = utcnow()
    proposal = SpeakerProposal(
        student_id=actor.uid,
        name=(name or actor.display_name or '').strip(),
        email=(email or actor.email or '').strip(),
        linkedin=(linkedin or '').strip(),
        phone=(phone or '').strip(),
        year=str(year).strip(),
        resume=resume.strip(),
        status=PROPOSAL_PENDING,
        created_at=now,
    )
    proposal_id = dao.create_proposal(dao.proposal_id(actor.uid, now), proposal.to_dict())
    logger.info('Speaker proposal %s submitted by %s', proposal_id, actor.uid)

    stored = dao.get_proposal(proposal_id)
    publish('proposal.submitted', {'proposal': stored}, rooms=_rooms(stored))
    return stored


def get_proposal_for(proposal_id, actor):
    """A proposal is visible to faculty and to the student who filed it."""
    require_authenticated(actor)
    proposal = dao.get_proposal(proposal_id)
    if not proposal:
        raise NotFound('Proposal not found.', proposal_id=proposal_id)
    if actor.role != ROLE_FACULTY and proposal.get('studentId') != actor.uid:
        raise PermissionDenied('You can only view your own applications.')
    return proposal


def list_proposals(actor, status=None, now=None):
    """Faculty see every proposal, others their own. Filters on derived status."""
    require_authenticated(actor)
    now = now or utcnow()
    if actor.role == ROLE_FACULTY:
        authorize(actor, 'review_speaker_proposal')
        proposals = dao.get_all_proposals()
    else:
        proposals = dao.get_proposals_by_student(actor.uid)
    if status:
        proposals = [p for p in proposals if derive_proposal_status(p, now) == status]
    return proposals


# ---------------------------------------------------------------------------
# Review and interview
# ---------------------------------------------------------------------------

def _transition(proposal_id, actor, new_status, fields, event, allow_from=None):
    """Compare-and-set ``new_status`` after checking the transition table.

    ``allow_from`` overrides the table for compound moves such as
    approve-and-schedule.
    """
    authorize(actor, 'review_speaker_proposal')
    now = utcnow()

    def apply(txn):
        proposal = txn.get(dao.SPEAKER_PROPOSALS, proposal_id)
        if proposal is None:
            raise NotFound('Proposal not found.', proposal_id=proposal_id)
        current = derive_proposal_status(proposal, now)
        allowed = current in allow_from if allow_from else can_transition(PROPOSAL_TRANSITIONS, current, new_status)
        if not allowed:
            raise InvalidTransition(
                f'Proposal is {current} and cannot be {new_status}.',
                proposal_id=proposal_id, status=current,
            )
        update = dict(fields, status=new_status)
        update.setdefault('reviewedBy', actor.uid)
        update.setdefault('reviewedAt', now)
        txn.update(dao.SPEAKER_PROPOSALS, proposal_id, update)
        return current

    previous = get_store().run_transaction(apply)
    logger.info('Proposal %s %s -> %s by %s', proposal_id, previous, new_status, actor.uid)

    proposal = dao.get_proposal(proposal_id)
    publish(event, {'proposal': proposal}, rooms=_rooms(proposal))
    return proposal


def approve_proposal(proposal_id, actor):
    return _transition(proposal_id, actor, PROPOSAL_APPROVED, {}, 'proposal.approved')


def reject_proposal(proposal_id, actor, message):
    authorize(actor, 'review_speaker_proposal')
    _required(message, 'message', 'Please enter a rejection message.')
    return _transition(
        proposal_id, actor, PROPOSAL_REJECTED,
        {'rejectionMessage': message}, 'proposal.rejected',
    )


def _interview_fields(date, time, venue):
    _required(date, 'interview_date', 'Please fill in all interview details (date, time, venue).')
    _required(time, 'interview_time', 'Please fill in all interview details (date, time, venue).')
    _required(venue, 'interview_venue', 'Please fill in all interview details (date, time, venue).')
    return {
        'interviewDate': date.strip(),
        'interviewTime': time.strip(),
        'interviewVenue': venue.strip(),
        'interviewTimestamp': interview_timestamp(date, time),
    }


def schedule_interview(proposal_id, actor, date, time, venue):
    """Schedule, or reschedule while the interview is still ahead."""
    authorize(actor, 'review_speaker_proposal')
    fields = _interview_fields(date, time, venue)
    return _transition(proposal_id, actor, PROPOSAL_SCHEDULED, fields, 'proposal.scheduled')


def approve_and_schedule(proposal_id, actor, date, time, venue):
    """Approve a pending application and schedule its interview at once."""
    authorize(actor, 'review_speaker_proposal')
    fields = _interview_fields(date, time, venue)
    return _transition(
        proposal_id, actor, PROPOSAL_SCHEDULED, fields, 'proposal.scheduled',
        allow_from=(PROPOSAL_PENDING, PROPOSAL_APPROVED),
    )


# ---------------------------------------------------------------------------
# Final decision
# ---------------------------------------------------------------------------

def _promotion_target(txn, proposal):
    """The applicant profile, looked up by student id and then by email.

    Faculty profiles are never returned, whatever the proposal says.
    """
    student_id = proposal.get('studentId')
    if student_id:
        profile = txn.get(dao.USERS, student_id)
        if profile and profile.get('role') in PROMOTABLE_ROLES:
            return profile
    email = proposal.get('email')
    if email:
        for profile in txn.query(dao.USERS, [('email', '==', email)]):
            if profile.get('role') in PROMOTABLE_ROLES:
                return profile
    return None


def _finalize(proposal_id, actor, new_status, fields):
    authorize(actor, 'review_speaker_proposal')
    now = utcnow()

    def decide(txn):
        proposal = txn.get(dao.SPEAKER_PROPOSALS, proposal_id)
        if proposal is None:
            raise NotFound('Proposal not found.', proposal_id=proposal_id)
        if proposal.get('status') in PROPOSAL_FINAL_STATES:
            raise AlreadyFinalized(proposal_id=proposal_id, status=proposal['status'])
        current = derive_proposal_status(proposal, now)
        if not can_transition(PROPOSAL_TRANSITIONS, current, new_status):
            raise InvalidTransition(
                f'Proposal is {current}; a final decision needs a completed interview.',
                proposal_id=proposal_id, status=current,
            )

        target = None
        if new_status == PROPOSAL_FINAL_APPROVED:
            target = _promotion_target(txn, proposal)

        txn.update(dao.SPEAKER_PROPOSALS, proposal_id, dict(
            fields, status=new_status, finalizedBy=actor.uid, finalizedAt=now,
        ))

        promoted = False
        if target is not None and not (target.get('role') == ROLE_SPEAKER and target.get('promotedAt')):
            txn.update(dao.USERS, target['id'], {
                'role': ROLE_SPEAKER,
                'promotedBy': actor.uid,
                'promotedAt': now,
            })
            promoted = True
        return proposal, target, promoted

    proposal, target, promoted = get_store().run_transaction(decide)
    logger.info('Proposal %s %s by %s', proposal_id, new_status, actor.uid)

    warning = None
    if new_status == PROPOSAL_FINAL_APPROVED:
        if target is None:
            warning = PromotionTargetNotFound(proposal_id, proposal.get('studentId'), proposal.get('email'))
            logger.warning('Proposal %s: %s', proposal_id, warning.message)
        elif promoted:
            logger.info('User %s promoted to speaker by %s', target['id'], actor.uid)
            publish('user.promoted', {'uid': target['id']}, rooms=[f"user_{target['id']}"])

    stored = dao.get_proposal(proposal_id)
    publish(f'proposal.{new_status}', {'proposal': stored}, rooms=_rooms(stored))
    return {
        'proposal': stored,
        'promoted_uid': target['id'] if promoted else None,
        'warning': warning.to_dict() if warning else None,
    }


def final_approve(proposal_id, actor):
    return _finalize(proposal_id, actor, PROPOSAL_FINAL_APPROVED, {})


def final_disapprove(proposal_id, actor, message):
    authorize(actor, 'review_speaker_proposal')
    _required(message, 'message', 'Please enter a disapproval message.')
    return _finalize(proposal_id, actor, PROPOSAL_FINAL_DISAPPROVED, {'disapprovalMessage': message})
