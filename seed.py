from datetime import datetime, timezone, timedelta
from flask import current_app, has_app_context
from skillbridge import create_app
from skillbridge.decorators import CurrentUser
from skillbridge import firestore_dao as dao
from skillbridge.firestore_models import (
    Feedback, Registration, UserProfile, ROLE_FACULTY, ROLE_SPEAKER, ROLE_STUDENT,
)
from skillbridge.services import counters, ledger
from skillbridge.services.registrations import register
from skillbridge.services import session_lifecycle as lifecycle
from skillbridge.services import speaker_workflow as workflow
from skillbridge.store import get_store


PASSWORD = 'password123'


def _create_user(email, display_name, role, uses_firebase):
    uid = email.split('@')[0]
    if uses_firebase:
        from skillbridge.firebase_init import get_auth
        auth = get_auth()
        try:
            uid = auth.create_user(email=email, password=PASSWORD, display_name=display_name).uid
        except auth.EmailAlreadyExistsError:
            uid = auth.get_user_by_email(email).uid

    profile = UserProfile(
        uid=uid,
        display_name=display_name,
        email=email,
        role=role,
        is_approved=True,
        created_at=datetime.now(timezone.utc),
    )
    dao.create_user(uid, profile.to_dict())
    return CurrentUser(dict(profile.to_dict(), id=uid))


def _seed(uses_firebase):
    now = datetime.now(timezone.utc)

    print("Creating users...")
    faculty = _create_user('faculty@example.com', 'Dr. Meera Rao', ROLE_FACULTY, uses_firebase)
    speaker = _create_user('speaker@example.com', 'Arjun Nair', ROLE_SPEAKER, uses_firebase)
    students = [
        _create_user(f'student{i}@example.com', f'Student {i}', ROLE_STUDENT, uses_firebase)
        for i in range(1, 6)
    ]

    print("Creating sessions...")
    upcoming = lifecycle.propose_session(
        speaker, 'Intro to Git', 'Branches, merges and pull requests.',
        date=now + timedelta(days=7), max_attendees=30, tags=['git', 'tools'],
    )
    paid = lifecycle.propose_session(
        speaker, 'System Design Workshop', 'Hands-on design of a URL shortener.',
        date=now + timedelta(days=14), max_attendees=20, price=199, tags=['design'],
    )
    past = lifecycle.propose_session(
        faculty, 'Resume Clinic', 'Bring your resume for a review.',
        date=now - timedelta(days=3), tags=['career'],
    )
    lifecycle.propose_session(speaker, 'Kubernetes 101', 'Pods, services and deployments.', date=now + timedelta(days=21))
    lifecycle.bulk_approve([upcoming['id'], paid['id'], past['id']], faculty)

    print("Creating suggested topics...")
    topics = [
        lifecycle.propose_session(students[0], 'Competitive Programming', 'Weekly contest practice.'),
        lifecycle.propose_session(students[1], 'Open Source Contributions', 'How to find a first issue.'),
        lifecycle.propose_session(students[2], 'Machine Learning Basics', 'Regression to neural networks.'),
    ]
    for i, student in enumerate(students):
        for topic in topics[:i % len(topics) + 1]:
            ledger.permanent_votes.upvote(topic['id'], student)

    print("Creating registrations and feedback...")
    store = get_store()
    for student in students[:3]:
        register(upcoming['id'], student)

    for rating, student in zip((5, 4, 4), students[:3]):
        registration = Registration(
            session_id=past['id'], attendee_id=student.uid, attendee_name=student.display_name,
            attendee_email=student.email, created_at=now - timedelta(days=5),
        )
        store.set(dao.REGISTRATIONS, dao.registration_id(past['id'], student.uid), registration.to_dict())
        feedback = Feedback(
            session_id=past['id'], attendee_id=student.uid, attendee_name=student.display_name,
            rating=rating, comment='Very useful session.', created_at=now - timedelta(days=2),
        )
        store.set(dao.FEEDBACK, dao.feedback_id(past['id'], student.uid), feedback.to_dict())
    counters.reconcile_session(past['id'])

    print("Creating speaker proposals...")
    pending = workflow.submit_proposal(students[3], year='3', resume='https://example.com/resume-4.pdf')
    scheduled = workflow.submit_proposal(students[4], year='4', resume='https://example.com/resume-5.pdf')
    interview = now + timedelta(days=2)
    workflow.approve_and_schedule(
        scheduled['id'], faculty, interview.strftime('%Y-%m-%d'), interview.strftime('%H:%M'), 'Seminar Hall 2',
    )

    return {
        'users': 2 + len(students),
        'sessions': len(dao.get_all_sessions()),
        'proposals': len([pending, scheduled]),
    }


def seed_database():
    if has_app_context():
        summary = _seed(current_app.config.get('STORE_BACKEND') == 'firestore')
    else:
        app = create_app()
        with app.app_context():
            summary = _seed(app.config.get('STORE_BACKEND') == 'firestore')

    print("\n" + "=" * 60)
    print("    Demo accounts")
    print("=" * 60)
    print("  Faculty:  faculty@example.com")
    print("  Speaker:  speaker@example.com")
    print("  Students: student1~5@example.com")
    print(f"  Password: {PASSWORD} (Firebase backend only)")
    print("=" * 60)
    print("Seeding complete!")
    return summary


if __name__ == '__main__':
    seed_database()
