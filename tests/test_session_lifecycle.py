from datetime import datetime, timedelta, timezone
from unittest import mock

import pytest
from freezegun import freeze_time

from skillbridge import firestore_dao as dao
from skillbridge.errors import (
    BulkTransitionError, InvalidTransition, NotFound, PermissionDenied, ValidationError,
)
from skillbridge.firestore_models import (
    ROLE_FACULTY, SESSION_APPROVED, SESSION_COMPLETED, SESSION_PENDING,
    SESSION_PROPOSED, SESSION_REJECTED, Feedback,
)
from skillbridge.services import session_lifecycle as lifecycle


NOW = datetime(2026, 3, 1, 12, 0, tzinfo=timezone.utc)


def test_derive_status_projects_elapsed_approved_sessions():
    past = {'status': SESSION_APPROVED, 'date': NOW - timedelta(minutes=1)}
    future = {'status': SESSION_APPROVED, 'date': NOW + timedelta(minutes=1)}
    undated = {'status': SESSION_APPROVED, 'date': None}
    pending_past = {'status': SESSION_PENDING, 'date': NOW - timedelta(days=1)}

    assert lifecycle.derive_status(past, NOW) == SESSION_COMPLETED
    assert lifecycle.derive_status(future, NOW) == SESSION_APPROVED
    assert lifecycle.derive_status(undated, NOW) == SESSION_APPROVED
    assert lifecycle.derive_status(pending_past, NOW) == SESSION_PENDING


def test_derive_status_accepts_iso_strings():
    session = {'status': SESSION_APPROVED, 'date': '2026-02-28T10:00:00Z'}
    assert lifecycle.derive_status(session, NOW) == SESSION_COMPLETED


def test_student_proposes_topic(student, published):
    date = NOW + timedelta(days=3)
    session = lifecycle.propose_session(student, '  Rust for beginners ', 'Ownership and borrowing', date=date, tags=['rust', ' '])

    assert session['status'] == SESSION_PROPOSED
    assert session['title'] == 'Rust for beginners'
    assert session['date'] is None
    assert session['upvotes'] == 0
    assert session['attendeeCount'] == 0
    assert session['authorId'] == student.uid
    assert session['tags'] == ['rust']
    assert published[-1][0] == 'session.created'


@pytest.mark.parametrize('role_fixture', ['faculty', 'speaker'])
def test_faculty_and_speakers_create_pending_sessions(request, role_fixture):
    actor = request.getfixturevalue(role_fixture)
    date = NOW + timedelta(days=3)
    session = lifecycle.propose_session(actor, 'Docker deep dive', date=date, max_attendees=10, price=50)

    assert session['status'] == SESSION_PENDING
    assert session['date'] == date
    assert session['maxAttendees'] == 10
    assert session['price'] == 50


def test_propose_validates_fields(speaker):
    with pytest.raises(ValidationError) as e:
        lifecycle.propose_session(speaker, '  ', max_attendees=0, price=-5, date='not a date')
    assert set(e.value.errors) == {'title', 'max_attendees', 'price', 'date'}
    assert dao.get_all_sessions() == []


def test_approve_sets_audit_fields(faculty, make_session, published):
    session = make_session(status=SESSION_PENDING)

    with freeze_time(NOW):
        approved = lifecycle.approve_session(session['id'], faculty)

    assert approved['status'] == SESSION_APPROVED
    assert approved['approvedBy'] == faculty.uid
    assert approved['approvedAt'] == NOW
    assert approved['rejectionReason'] is None
    event, payload, rooms = published[-1]
    assert event == 'session.approved'
    assert f"user_{session['authorId']}" in rooms


def test_proposed_topic_can_be_approved(faculty, make_session):
    topic = make_session(status=SESSION_PROPOSED, days=None)
    assert lifecycle.approve_session(topic['id'], faculty)['status'] == SESSION_APPROVED


def test_reject_requires_reason(faculty, make_session):
    session = make_session(status=SESSION_PENDING)
    for reason in (None, '', '   '):
        with pytest.raises(ValidationError):
            lifecycle.reject_session(session['id'], faculty, reason)
    assert dao.get_session(session['id'])['status'] == SESSION_PENDING


def test_reject_stores_reason_verbatim(faculty, make_session):
    session = make_session(status=SESSION_PENDING)
    rejected = lifecycle.reject_session(session['id'], faculty, 'too broad')

    assert rejected['status'] == SESSION_REJECTED
    assert rejected['rejectionReason'] == 'too broad'
    assert rejected['approvedBy'] == faculty.uid


@pytest.mark.parametrize('status', [SESSION_APPROVED, SESSION_REJECTED, SESSION_COMPLETED])
def test_decisions_only_from_open_states(faculty, make_session, status):
    session = make_session(status=status)
    with pytest.raises(InvalidTransition):
        lifecycle.approve_session(session['id'], faculty)
    with pytest.raises(InvalidTransition):
        lifecycle.reject_session(session['id'], faculty, 'no')
    assert dao.get_session(session['id'])['status'] == status


def test_elapsed_session_cannot_be_rejected(faculty, make_session):
    session = make_session(status=SESSION_APPROVED, days=-1)
    with pytest.raises(InvalidTransition) as e:
        lifecycle.reject_session(session['id'], faculty, 'late')
    assert e.value.details['status'] == SESSION_COMPLETED


def test_missing_session(faculty):
    with pytest.raises(NotFound):
        lifecycle.approve_session('nope', faculty)


def test_only_approved_faculty_decide(make_user, student, speaker, make_session):
    session = make_session(status=SESSION_PENDING)
    pending_faculty = make_user(ROLE_FACULTY, approved=False)
    for actor in (student, speaker, pending_faculty):
        with pytest.raises(PermissionDenied):
            lifecycle.approve_session(session['id'], actor)
    assert dao.get_session(session['id'])['status'] == SESSION_PENDING


def test_concurrent_decisions_write_once(faculty, make_session):
    """Approve racing reject: the second compare-and-set sees the first."""
    session = make_session(status=SESSION_PENDING)
    lifecycle.approve_session(session['id'], faculty)
    with pytest.raises(InvalidTransition):
        lifecycle.reject_session(session['id'], faculty, 'too late')
    assert dao.get_session(session['id'])['status'] == SESSION_APPROVED


def test_bulk_approve(faculty, make_session):
    ids = [make_session(status=SESSION_PENDING)['id'] for _ in range(3)]
    ids.append(make_session(status=SESSION_PROPOSED, days=None)['id'])

    sessions = lifecycle.bulk_approve(ids + [ids[0]], faculty)

    assert [s['id'] for s in sessions] == ids
    assert all(dao.get_session(i)['status'] == SESSION_APPROVED for i in ids)


def test_bulk_is_all_or_nothing(faculty, make_session):
    ok = make_session(status=SESSION_PENDING)
    done = make_session(status=SESSION_REJECTED)

    with pytest.raises(BulkTransitionError) as e:
        lifecycle.bulk_approve([ok['id'], done['id'], 'ghost'], faculty)

    assert set(e.value.failed) == {done['id'], 'ghost'}
    assert dao.get_session(ok['id'])['status'] == SESSION_PENDING


def test_bulk_reject_requires_reason(faculty, make_session):
    session = make_session(status=SESSION_PENDING)
    with pytest.raises(ValidationError):
        lifecycle.bulk_reject([session['id']], faculty, '')
    rejected = lifecycle.bulk_reject([session['id']], faculty, 'duplicate topic')
    assert rejected[0]['rejectionReason'] == 'duplicate topic'


def test_bulk_limits(faculty):
    with pytest.raises(ValidationError):
        lifecycle.bulk_approve([], faculty)
    with pytest.raises(ValidationError):
        lifecycle.bulk_approve([f'id-{i}' for i in range(lifecycle.MAX_BULK_IDS + 1)], faculty)


def test_completion_job_persists_projection(make_session):
    elapsed = make_session(status=SESSION_APPROVED, date=NOW - timedelta(hours=1))
    upcoming = make_session(status=SESSION_APPROVED, date=NOW + timedelta(hours=1))
    pending = make_session(status=SESSION_PENDING, date=NOW - timedelta(hours=1))

    assert lifecycle.complete_elapsed_sessions(NOW) == [elapsed['id']]

    stored = dao.get_session(elapsed['id'])
    assert stored['status'] == SESSION_COMPLETED
    assert stored['completedAt'] == NOW
    assert dao.get_session(upcoming['id'])['status'] == SESSION_APPROVED
    assert dao.get_session(pending['id'])['status'] == SESSION_PENDING
    # readers agree before and after the job
    assert lifecycle.derive_status(stored, NOW) == SESSION_COMPLETED


def test_completion_job_is_idempotent(make_session):
    make_session(status=SESSION_APPROVED, date=NOW - timedelta(hours=1))
    assert len(lifecycle.complete_elapsed_sessions(NOW)) == 1
    assert lifecycle.complete_elapsed_sessions(NOW) == []


def test_completion_job_skips_sessions_changed_meanwhile(make_session):
    session = make_session(status=SESSION_APPROVED, date=NOW - timedelta(hours=1))
    stale = dict(session)
    dao.update_session(session['id'], {'status': SESSION_COMPLETED, 'completedAt': NOW})

    with mock.patch.object(lifecycle.dao, 'get_sessions_by_status', return_value=[stale]):
        assert lifecycle.complete_elapsed_sessions(NOW) == []


def test_ranked_topics_orders_by_upvotes_then_newest(make_session):
    old_popular = make_session(status=SESSION_PROPOSED, days=None, upvotes=5, created_at=NOW - timedelta(days=3))
    new_popular = make_session(status=SESSION_PROPOSED, days=None, upvotes=5, created_at=NOW - timedelta(days=1))
    newest = make_session(status=SESSION_PROPOSED, days=None, upvotes=1, created_at=NOW)
    make_session(status=SESSION_PENDING, upvotes=50)

    ranked = lifecycle.ranked_topics()
    assert [s['id'] for s in ranked] == [new_popular['id'], old_popular['id'], newest['id']]


def test_session_view_uses_projection_and_ratings(make_session, student):
    session = make_session(status=SESSION_APPROVED, date=NOW - timedelta(days=1))
    view = lifecycle.session_view(session, NOW, student)

    assert view['status'] == SESSION_COMPLETED
    assert view['storedStatus'] == SESSION_APPROVED
    assert view['averageRating'] is None
    assert view['ratingCount'] == 0
    assert view['isRegistered'] is False
    assert view['canViewAttendees'] is False


def test_list_sessions_filters_on_derived_status(make_session):
    elapsed = make_session(status=SESSION_APPROVED, date=NOW - timedelta(days=1))
    upcoming = make_session(status=SESSION_APPROVED, date=NOW + timedelta(days=1))

    assert [s['id'] for s in lifecycle.list_sessions(SESSION_COMPLETED, NOW)] == [elapsed['id']]
    assert [s['id'] for s in lifecycle.list_sessions(SESSION_APPROVED, NOW)] == [upcoming['id']]


def test_signed_out_listing_hides_undecided_sessions(make_session, student):
    topic = make_session(status=SESSION_PROPOSED, days=None)
    upcoming = make_session(status=SESSION_APPROVED, date=NOW + timedelta(days=1))
    pending = make_session(status=SESSION_PENDING, date=NOW + timedelta(days=2))
    rejected = make_session(status=SESSION_REJECTED, rejection_reason='Out of scope')

    public = {s['id'] for s in lifecycle.list_sessions(now=NOW)}
    assert public == {topic['id'], upcoming['id']}
    assert lifecycle.list_sessions(SESSION_REJECTED, NOW) == []

    signed_in = {s['id'] for s in lifecycle.list_sessions(now=NOW, viewer=student)}
    assert signed_in == {topic['id'], upcoming['id'], pending['id'], rejected['id']}


def test_my_sessions_lists_own_sessions_with_reviews(make_session, speaker, make_user, store):
    older = make_session(author_id=speaker.uid, date=NOW - timedelta(days=3),
                         created_at=NOW - timedelta(days=10))
    newer = make_session(author_id=speaker.uid, status=SESSION_PENDING, date=NOW + timedelta(days=3),
                         created_at=NOW - timedelta(days=1))
    make_session(author_id='someone-else')

    attendee = make_user()
    review = Feedback(session_id=older['id'], attendee_id=attendee.uid, attendee_name='A', rating=4,
                      comment='Clear and practical', created_at=NOW, updated_at=NOW)
    store.set(dao.FEEDBACK, dao.feedback_id(older['id'], attendee.uid), review.to_dict())

    views = lifecycle.my_sessions(speaker, NOW)

    assert [v['id'] for v in views] == [newer['id'], older['id']]
    assert views[0]['status'] == SESSION_PENDING
    assert views[0]['reviews'] == []
    assert views[1]['status'] == SESSION_COMPLETED
    assert views[1]['averageRating'] == 4
    assert [r['comment'] for r in views[1]['reviews']] == ['Clear and practical']
    assert views[1]['canViewAttendees'] is True
