import pytest

from skillbridge.decorators import CurrentUser
from skillbridge.errors import NotAuthenticated, PermissionDenied
from skillbridge.firestore_models import ROLE_FACULTY, ROLE_SPEAKER, ROLE_STUDENT
from skillbridge.services.guard import ACTION_ROLES, authorize, can_view_attendees


def _user(role, approved=True, uid='u1'):
    return CurrentUser({'uid': uid, 'role': role, 'isApproved': approved})


@pytest.mark.parametrize('action,role,allowed', [
    ('propose_session', ROLE_STUDENT, True),
    ('propose_session', ROLE_SPEAKER, True),
    ('decide_session', ROLE_FACULTY, True),
    ('decide_session', ROLE_SPEAKER, False),
    ('decide_session', ROLE_STUDENT, False),
    ('register', ROLE_STUDENT, True),
    ('register', ROLE_FACULTY, False),
    ('give_feedback', ROLE_SPEAKER, False),
    ('upvote', ROLE_FACULTY, True),
    ('submit_speaker_proposal', ROLE_SPEAKER, False),
    ('review_speaker_proposal', ROLE_FACULTY, True),
])
def test_action_roles(action, role, allowed):
    actor = _user(role)
    if allowed:
        assert authorize(actor, action) is actor
    else:
        with pytest.raises(PermissionDenied):
            authorize(actor, action)


def test_unapproved_faculty_can_do_nothing():
    pending = _user(ROLE_FACULTY, approved=False)
    for action, roles in ACTION_ROLES.items():
        if ROLE_FACULTY in roles:
            with pytest.raises(PermissionDenied):
                authorize(pending, action)


def test_missing_approval_flag_counts_as_unapproved():
    assert not CurrentUser({'uid': 'f', 'role': ROLE_FACULTY}).is_approved
    assert CurrentUser({'uid': 's', 'role': ROLE_STUDENT}).is_approved


def test_anonymous_actor():
    with pytest.raises(NotAuthenticated):
        authorize(CurrentUser(), 'upvote')
    with pytest.raises(NotAuthenticated):
        authorize(None, 'upvote')


def test_attendee_visibility():
    session = {'authorId': 'author'}
    assert can_view_attendees(_user(ROLE_FACULTY), session)
    assert not can_view_attendees(_user(ROLE_FACULTY, approved=False), session)
    assert can_view_attendees(_user(ROLE_SPEAKER, uid='author'), session)
    assert not can_view_attendees(_user(ROLE_STUDENT, uid='someone'), session)
    assert not can_view_attendees(CurrentUser(), session)
