from datetime import datetime, timezone

from freezegun import freeze_time

from skillbridge import firestore_dao as dao
from skillbridge.firestore_models import (
    PROPOSAL_FINAL_APPROVED, ROLE_SPEAKER, SESSION_PENDING, SESSION_PROPOSED, SESSION_REJECTED,
)


def auth_headers(user):
    return {'Authorization': f'Bearer token-{user.uid}'}


def test_health(client):
    assert client.get('/health').json == {'status': 'ok'}


def test_me(client, student):
    assert client.get('/me').status_code == 401
    assert client.get('/me', headers={'Authorization': 'Bearer forged'}).status_code == 401

    rv = client.get('/me', headers=auth_headers(student))
    assert rv.status_code == 200
    assert rv.json['user']['uid'] == student.uid
    assert rv.json['user']['role'] == 'student'


def test_each_request_resolves_its_own_user(client, student, faculty):
    assert client.get('/me', headers=auth_headers(student)).json['user']['uid'] == student.uid
    assert client.get('/me', headers=auth_headers(faculty)).json['user']['uid'] == faculty.uid
    assert client.get('/me').status_code == 401


def test_propose_and_decide(client, student, faculty, speaker):
    rv = client.post('/sessions', json={'title': 'Kubernetes 101', 'date': '2030-05-01T10:00:00+00:00',
                                        'max_attendees': 20, 'price': 0, 'tags': ['devops']},
                     headers=auth_headers(speaker))
    assert rv.status_code == 201
    session = rv.json['session']
    assert session['status'] == SESSION_PENDING
    assert session['date'] == '2030-05-01T10:00:00+00:00'
    assert session['tags'] == ['devops']

    rv = client.post(f"/sessions/{session['id']}/approve", headers=auth_headers(student))
    assert rv.status_code == 403
    assert rv.json['success'] is False
    assert rv.json['kind'] == 'not_allowed'

    rv = client.post(f"/sessions/{session['id']}/approve", headers=auth_headers(faculty))
    assert rv.status_code == 200
    assert rv.json['session']['status'] == 'approved'

    rv = client.post(f"/sessions/{session['id']}/reject", json={'reason': 'late'}, headers=auth_headers(faculty))
    assert rv.status_code == 409
    assert rv.json['code'] == 'invalid_transition'
    assert rv.json['kind'] == 'wrong_state'


def test_propose_validation(client, speaker):
    rv = client.post('/sessions', json={'title': '', 'price': -1}, headers=auth_headers(speaker))
    assert rv.status_code == 400
    assert rv.json['code'] == 'validation_error'
    assert set(rv.json['errors']) >= {'title', 'price'}


def test_reject_needs_reason(client, faculty, make_session):
    session = make_session(status=SESSION_PENDING)
    rv = client.post(f"/sessions/{session['id']}/reject", json={}, headers=auth_headers(faculty))
    assert rv.status_code == 400
    rv = client.post(f"/sessions/{session['id']}/reject", json={'reason': 'too broad'}, headers=auth_headers(faculty))
    assert rv.json['session']['rejectionReason'] == 'too broad'


def test_bulk_approve_route(client, faculty, make_session):
    ids = [make_session(status=SESSION_PENDING)['id'] for _ in range(2)]
    rv = client.post('/sessions/bulk-approve', json={'ids': ids}, headers=auth_headers(faculty))
    assert rv.status_code == 200
    assert rv.json['updated'] == ids

    rv = client.post('/sessions/bulk-reject', json={'ids': ids, 'reason': 'oops'}, headers=auth_headers(faculty))
    assert rv.status_code == 409
    assert set(rv.json['failed']) == set(ids)


def test_registration_flow(client, student, make_session):
    session = make_session()
    url = f"/sessions/{session['id']}"

    rv = client.post(f'{url}/register', headers=auth_headers(student))
    assert rv.status_code == 201
    assert rv.json['attendeeCount'] == 1

    # a repeat is reported as success without a second write
    rv = client.post(f'{url}/register', headers=auth_headers(student))
    assert rv.status_code == 200
    assert rv.json['success'] is True
    assert rv.json['kind'] == 'already_done'
    assert 'error' not in rv.json

    rv = client.get(url, headers=auth_headers(student))
    assert rv.json['session']['isRegistered'] is True
    assert rv.json['session']['attendeeCount'] == 1

    rv = client.get('/sessions/registered', headers=auth_headers(student))
    assert [r['sessionId'] for r in rv.json['registrations']] == [session['id']]

    rv = client.post(f'{url}/unregister', headers=auth_headers(student))
    assert rv.status_code == 200
    assert rv.json['attendeeCount'] == 0

    rv = client.post(f'{url}/unregister', headers=auth_headers(student))
    assert rv.json['code'] == 'not_registered'
    assert rv.json['success'] is True


def test_paid_registration(client, student, make_session):
    session = make_session(price=199)
    url = f"/sessions/{session['id']}/register"

    rv = client.post(url, headers=auth_headers(student))
    assert rv.status_code == 402
    assert rv.json['amount'] == 199

    rv = client.post(url, json={'confirm_payment': True}, headers=auth_headers(student))
    assert rv.status_code == 201
    assert rv.json['payment']['currency'] == 'INR'
    assert 'Payment of 199' in rv.json['message']


def test_attendees_route(client, student, faculty, make_session):
    session = make_session()
    client.post(f"/sessions/{session['id']}/register", headers=auth_headers(student))

    assert client.get(f"/sessions/{session['id']}/attendees", headers=auth_headers(student)).status_code == 403
    rv = client.get(f"/sessions/{session['id']}/attendees", headers=auth_headers(faculty))
    assert rv.json['count'] == 1
    assert rv.json['attendees'][0]['attendeeId'] == student.uid


def test_upvote_routes(client, student, make_session):
    topic = make_session(status=SESSION_PROPOSED, days=None)
    url = f"/sessions/{topic['id']}"

    assert client.post(f'{url}/upvote', headers=auth_headers(student)).json['upvotes'] == 1
    rv = client.post(f'{url}/upvote', headers=auth_headers(student))
    assert rv.status_code == 200
    assert rv.json['code'] == 'already_upvoted'

    assert client.post(f'{url}/toggle-upvote', headers=auth_headers(student)).json['upvotes'] == 2
    rv = client.get('/sessions/upvoted', headers=auth_headers(student))
    assert rv.json == {'success': True, 'permanent': [topic['id']], 'toggleable': [topic['id']]}

    ranking = client.get('/sessions/ranking').json['sessions']
    assert [s['id'] for s in ranking] == [topic['id']]


def test_feedback_and_ratings(client, student, make_session):
    session = make_session()
    url = f"/sessions/{session['id']}"
    client.post(f'{url}/register', headers=auth_headers(student))

    rv = client.post(f'{url}/feedback', json={'rating': 5}, headers=auth_headers(student))
    assert rv.status_code == 409

    dao.update_session(session['id'], {'date': datetime(2025, 12, 1, tzinfo=timezone.utc)})

    rv = client.post(f'{url}/feedback', json={'rating': 4.5}, headers=auth_headers(student))
    assert rv.status_code == 400
    assert 'rating' in rv.json['errors']

    rv = client.post(f'{url}/feedback', json={'rating': 4, 'comment': 'Useful'}, headers=auth_headers(student))
    assert rv.status_code == 200
    assert rv.json['summary']['averageRating'] == 4

    rv = client.get(f'{url}/ratings')
    assert rv.json['summary']['ratingCount'] == 1
    assert rv.json['reviews'][0]['comment'] == 'Useful'

    listed = client.get('/sessions?status=completed').json['sessions']
    assert [s['id'] for s in listed] == [session['id']]
    assert listed[0]['averageRating'] == 4


def test_unknown_session(client):
    rv = client.get('/sessions/ghost')
    assert rv.status_code == 404
    assert rv.json['code'] == 'not_found'


def test_speaker_proposal_routes(client, student, faculty):
    with freeze_time('2026-01-01 09:00:00'):
        rv = client.post('/speaker-proposals', json={'year': '3', 'resume': 'https://example.com/cv.pdf'},
                         headers=auth_headers(student))
    assert rv.status_code == 201
    proposal_id = rv.json['proposal']['id']
    url = f'/speaker-proposals/{proposal_id}'

    interview = {'interview_date': '2026-01-05', 'interview_time': '14:30', 'interview_venue': 'Room 101'}
    with freeze_time('2026-01-02 09:00:00'):
        rv = client.post(f'{url}/schedule', json=interview, headers=auth_headers(faculty))
        assert rv.status_code == 409
        rv = client.post(f'{url}/schedule?approve=1', json=interview, headers=auth_headers(faculty))
        assert rv.json['proposal']['status'] == 'scheduled'
        assert rv.json['proposal']['interviewTimestamp'] == '2026-01-05T14:30:00+00:00'

    with freeze_time('2026-01-06 09:00:00'):
        rv = client.get(url, headers=auth_headers(student))
        assert rv.json['proposal']['status'] == 'interview_completed'

        rv = client.post(f'{url}/final-approve', headers=auth_headers(faculty))
        assert rv.status_code == 200
        assert rv.json['proposal']['status'] == PROPOSAL_FINAL_APPROVED
        assert rv.json['promoted_uid'] == student.uid

        rv = client.post(f'{url}/final-approve', headers=auth_headers(faculty))
        assert rv.json['code'] == 'already_finalized'
        assert rv.json['success'] is True

    assert dao.get_user(student.uid)['role'] == ROLE_SPEAKER
    rv = client.get('/speaker-proposals', headers=auth_headers(student))
    assert [p['id'] for p in rv.json['proposals']] == [proposal_id]


def test_speaker_proposal_validation(client, student, faculty):
    rv = client.post('/speaker-proposals', json={'year': '3', 'resume': 'not a url'}, headers=auth_headers(student))
    assert rv.status_code == 400
    assert 'resume' in rv.json['errors']

    rv = client.post('/speaker-proposals/ghost/reject', json={}, headers=auth_headers(faculty))
    assert rv.status_code == 400


def test_csrf_applies_to_cookie_sessions_only(app, client, student, make_session):
    app.config['WTF_CSRF_ENABLED'] = True
    session = make_session()

    rv = client.post(f"/sessions/{session['id']}/register")
    assert rv.status_code == 400

    rv = client.post(f"/sessions/{session['id']}/register", headers=auth_headers(student))
    assert rv.status_code == 201


def test_signed_out_visitors_only_see_public_sessions(client, student, make_session):
    approved = make_session()
    pending = make_session(status=SESSION_PENDING)
    rejected = make_session(status=SESSION_REJECTED, rejection_reason='Duplicate')

    listed = {s['id'] for s in client.get('/sessions').json['sessions']}
    assert listed == {approved['id']}
    assert client.get(f"/sessions/{pending['id']}").status_code == 404
    assert client.get(f"/sessions/{rejected['id']}").status_code == 404

    listed = {s['id'] for s in client.get('/sessions', headers=auth_headers(student)).json['sessions']}
    assert listed == {approved['id'], pending['id'], rejected['id']}
    rv = client.get(f"/sessions/{rejected['id']}", headers=auth_headers(student))
    assert rv.json['session']['rejectionReason'] == 'Duplicate'


def test_my_sessions_route(client, speaker):
    assert client.get('/sessions/mine').status_code == 401

    rv = client.post('/sessions', json={'title': 'Testing in Python', 'date': '2030-01-10T10:00:00+00:00'},
                     headers=auth_headers(speaker))
    session_id = rv.json['session']['id']

    rv = client.get('/sessions/mine', headers=auth_headers(speaker))
    assert [s['id'] for s in rv.json['sessions']] == [session_id]
    assert rv.json['sessions'][0]['reviews'] == []


def test_topic_request_routes(client, student, speaker, faculty):
    rv = client.post('/topic-requests', json={'topic': ''}, headers=auth_headers(student))
    assert rv.status_code == 400
    assert 'topic' in rv.json['errors']

    rv = client.post('/topic-requests', json={'topic': 'Docker basics', 'description': 'From zero'},
                     headers=auth_headers(student))
    assert rv.status_code == 201
    request_id = rv.json['request']['id']

    assert client.post('/topic-requests', json={'topic': 'Ops'}, headers=auth_headers(speaker)).status_code == 403

    for reviewer in (speaker, faculty, student):
        rv = client.get('/topic-requests', headers=auth_headers(reviewer))
        assert rv.status_code == 200
        assert [r['id'] for r in rv.json['requests']] == [request_id]
    assert client.get('/topic-requests').status_code == 401
