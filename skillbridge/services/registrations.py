"""Registration ledger use-cases: register, unregister, attendee lists."""

import logging
from datetime import datetime, timezone

from flask import current_app, has_app_context

from skillbridge import firestore_dao as dao
from skillbridge.errors import (
    AlreadyRegistered, CapacityExceeded, InvalidTransition, NotFound,
    NotRegistered, PaymentConfirmationRequired, PermissionDenied,
)
from skillbridge.firestore_models import (
    PAYMENT_COMPLETED, SESSION_APPROVED, SESSION_COMPLETED, Registration,
    parse_datetime, utcnow,
)
from skillbridge.services.counters import count_active_registrations, refresh_attendee_count
from skillbridge.services.guard import authorize, can_view_attendees, require_authenticated
from skillbridge.services.notifier import publish
from skillbridge.services.payments import get_gateway
from skillbridge.services.session_lifecycle import derive_status, load_session
from skillbridge.store import get_store

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


def _soft_delete():
    if has_app_context():
        return current_app.config.get('REGISTRATION_SOFT_DELETE', True)
    return True


def _is_active(registration):
    return bool(registration) and registration.get('cancelled') is not True


def _rooms(session, attendee_id):
    rooms = [f'user_{attendee_id}', f"session_{session['id']}"]
    if session.get('authorId'):
        rooms.append(f"user_{session['authorId']}")
    return rooms


def _check_open(session, now):
    status = derive_status(session, now)
    if status != SESSION_APPROVED:
        raise InvalidTransition(
            'This session is no longer available for registration.',
            session_id=session['id'], status=status,
        )


def register(session_id, actor, confirm_payment=False):
    """Register ``actor`` for an approved session.

    Paid sessions need ``confirm_payment=True``; the payment is captured
    before the registration is written and refunded if the write fails.
    Capacity is checked in the same transaction that writes the fact.
    """
    authorize(actor, 'register')
    session = load_session(session_id)
    now = utcnow()
    _check_open(session, now)
    if _is_active(dao.get_registration(session_id, actor.uid)):
        raise AlreadyRegistered(session_id=session_id)

    price = session.get('price') or 0
    gateway = None
    receipt = None
    if price > 0:
        if not confirm_payment:
            raise PaymentConfirmationRequired(price)
        gateway = get_gateway()
        receipt = gateway.capture(price, description=f'session {session_id} for {actor.uid}')

    reg_id = dao.registration_id(session_id, actor.uid)
    fact = Registration(
        session_id=session_id,
        attendee_id=actor.uid,
        attendee_name=actor.display_name,
        attendee_email=actor.email,
        created_at=now,
        payment_amount=price,
        payment_status=PAYMENT_COMPLETED,
        payment_reference=receipt.reference if receipt else None,
        payment_date=receipt.captured_at if receipt else None,
    )

    def write(txn):
        current = txn.get(dao.SESSIONS, session_id)
        if current is None:
            raise NotFound('Session not found.', session_id=session_id)
        _check_open(current, now)
        if _is_active(txn.get(dao.REGISTRATIONS, reg_id)):
            raise AlreadyRegistered(session_id=session_id)
        limit = current.get('maxAttendees')
        if limit:
            taken = count_active_registrations(txn.query(dao.REGISTRATIONS, [('sessionId', '==', session_id)]))
            if taken >= limit:
                raise CapacityExceeded(session_id=session_id, max_attendees=limit)
        txn.set(dao.REGISTRATIONS, reg_id, fact.to_dict())

    try:
        get_store().run_transaction(write)
    except Exception:
        if receipt is not None:
            gateway.refund(receipt)
        raise

    logger.info('User %s registered for session %s', actor.uid, session_id)
    count = refresh_attendee_count(session_id)
    publish('registration.created', {'session_id': session_id, 'attendee_id': actor.uid}, rooms=_rooms(session, actor.uid))
    return {
        'registration': dao.get_registration(session_id, actor.uid),
        'attendeeCount': count,
        'payment': receipt.to_dict() if receipt else None,
    }


def unregister(session_id, actor):
    """Cancel the actor's registration and recompute the attendee count."""
    authorize(actor, 'unregister')
    session = load_session(session_id)
    now = utcnow()
    if derive_status(session, now) == SESSION_COMPLETED:
        raise InvalidTransition('You cannot unregister from a completed session.', session_id=session_id, status=SESSION_COMPLETED)

    reg_id = dao.registration_id(session_id, actor.uid)
    soft = _soft_delete()

    def cancel(txn):
        if not _is_active(txn.get(dao.REGISTRATIONS, reg_id)):
            raise NotRegistered(session_id=session_id)
        if soft:
            txn.update(dao.REGISTRATIONS, reg_id, {'cancelled': True, 'cancelledAt': now})
        else:
            txn.delete(dao.REGISTRATIONS, reg_id)

    get_store().run_transaction(cancel)
    logger.info('User %s unregistered from session %s', actor.uid, session_id)
    count = refresh_attendee_count(session_id)
    publish('registration.cancelled', {'session_id': session_id, 'attendee_id': actor.uid}, rooms=_rooms(session, actor.uid))
    return {'session_id': session_id, 'attendeeCount': count}


def list_attendees(session_id, actor):
    """Active registrations, visible to faculty and the session's author."""
    require_authenticated(actor)
    session = load_session(session_id)
    if not can_view_attendees(actor, session):
        logger.warning('User %s denied attendee list of session %s', actor.uid, session_id)
        raise PermissionDenied('Only faculty and the session author can see attendees.')

    attendees = [r for r in dao.get_registrations_by_session(session_id) if _is_active(r)]
    attendees.sort(key=lambda r: parse_datetime(r.get('createdAt')) or _EPOCH)
    return [
        {
            'attendeeId': r.get('attendeeId'),
            'attendeeName': r.get('attendeeName') or '',
            'attendeeEmail': r.get('attendeeEmail') or '',
            'registeredAt': r.get('createdAt'),
            'paymentStatus': r.get('paymentStatus'),
        }
        for r in attendees
    ]


def my_registrations(actor):
    """Active registrations of the actor, newest first."""
    require_authenticated(actor)
    regs = [r for r in dao.get_registrations_by_user(actor.uid) if _is_active(r)]
    regs.sort(key=lambda r: parse_datetime(r.get('createdAt')) or _EPOCH, reverse=True)
    return regs
