from flask import Blueprint, request, jsonify
from skillbridge.decorators import auth_required, get_current_user
from skillbridge.errors import NotFound
from skillbridge.forms import (
    BulkDecisionForm, FeedbackForm, RegisterForm, RejectionForm,
    SessionProposalForm, validated,
)
from skillbridge.services import ledger, ratings, registrations
from skillbridge.services import session_lifecycle as lifecycle
from skillbridge.firestore_models import utcnow

bp = Blueprint('sessions', __name__, url_prefix='/sessions')


def _view(session):
    return lifecycle.session_view(session, utcnow(), get_current_user())


@bp.route('')
def list_sessions():
    status = request.args.get('status') or None
    now = utcnow()
    sessions = [lifecycle.session_view(s, now) for s in lifecycle.list_sessions(status, now, get_current_user())]
    return jsonify({'success': True, 'sessions': sessions})


@bp.route('/ranking')
def ranking():
    topics = [lifecycle.session_view(s) for s in lifecycle.ranked_topics()]
    return jsonify({'success': True, 'sessions': topics})


@bp.route('', methods=['POST'])
@auth_required
def propose():
    form = validated(SessionProposalForm)
    session = lifecycle.propose_session(
        get_current_user(),
        title=form.title.data,
        description=form.description.data,
        date=form.date.data,
        max_attendees=form.max_attendees.data,
        price=form.price.data,
        tags=form.tags.data,
    )
    return jsonify({'success': True, 'session': _view(session)}), 201


@bp.route('/registered')
@auth_required
def registered():
    regs = registrations.my_registrations(get_current_user())
    return jsonify({'success': True, 'registrations': regs})


@bp.route('/mine')
@auth_required
def mine():
    return jsonify({'success': True, 'sessions': lifecycle.my_sessions(get_current_user())})


@bp.route('/upvoted')
@auth_required
def upvoted():
    uid = get_current_user().uid
    return jsonify({
        'success': True,
        'permanent': sorted(ledger.permanent_votes.voted_subjects(uid)),
        'toggleable': sorted(ledger.toggleable_votes.voted_subjects(uid)),
    })


@bp.route('/<session_id>')
def detail(session_id):
    session = lifecycle.load_session(session_id)
    if not get_current_user().is_authenticated and not lifecycle.is_public(session):
        raise NotFound('Session not found.', session_id=session_id)
    return jsonify({'success': True, 'session': _view(session)})


# -- faculty decisions -------------------------------------------------------

@bp.route('/<session_id>/approve', methods=['POST'])
@auth_required
def approve(session_id):
    session = lifecycle.approve_session(session_id, get_current_user())
    return jsonify({'success': True, 'message': 'Session approved.', 'session': _view(session)})


@bp.route('/<session_id>/reject', methods=['POST'])
@auth_required
def reject(session_id):
    form = validated(RejectionForm)
    session = lifecycle.reject_session(session_id, get_current_user(), form.reason.data)
    return jsonify({'success': True, 'message': 'Session rejected.', 'session': _view(session)})


@bp.route('/bulk-approve', methods=['POST'])
@auth_required
def bulk_approve():
    form = validated(BulkDecisionForm)
    sessions = lifecycle.bulk_approve(form.ids.data, get_current_user())
    return jsonify({'success': True, 'updated': [s['id'] for s in sessions]})


@bp.route('/bulk-reject', methods=['POST'])
@auth_required
def bulk_reject():
    form = validated(BulkDecisionForm)
    sessions = lifecycle.bulk_reject(form.ids.data, get_current_user(), form.reason.data)
    return jsonify({'success': True, 'updated': [s['id'] for s in sessions]})


# -- registrations -----------------------------------------------------------

@bp.route('/<session_id>/register', methods=['POST'])
@auth_required
def register(session_id):
    form = validated(RegisterForm)
    result = registrations.register(session_id, get_current_user(), confirm_payment=form.confirm_payment.data)
    message = 'Successfully registered for the session!'
    if result['payment']:
        message = f"Registration successful! Payment of {result['payment']['amount']} processed."
    return jsonify(dict(result, success=True, message=message)), 201


@bp.route('/<session_id>/unregister', methods=['POST'])
@auth_required
def unregister(session_id):
    result = registrations.unregister(session_id, get_current_user())
    return jsonify(dict(result, success=True, message='Successfully unregistered from the session.'))


@bp.route('/<session_id>/attendees')
@auth_required
def attendees(session_id):
    people = registrations.list_attendees(session_id, get_current_user())
    return jsonify({'success': True, 'attendees': people, 'count': len(people)})


# -- upvotes -----------------------------------------------------------------

@bp.route('/<session_id>/upvote', methods=['POST'])
@auth_required
def upvote(session_id):
    result = ledger.permanent_votes.upvote(session_id, get_current_user())
    return jsonify(dict(result, success=True))


@bp.route('/<session_id>/toggle-upvote', methods=['POST'])
@auth_required
def toggle_upvote(session_id):
    result = ledger.toggleable_votes.toggle(session_id, get_current_user())
    return jsonify(dict(result, success=True))


# -- feedback ----------------------------------------------------------------

@bp.route('/<session_id>/feedback', methods=['POST'])
@auth_required
def feedback(session_id):
    form = validated(FeedbackForm)
    result = ledger.submit_feedback(session_id, get_current_user(), form.rating.data, form.comment.data)
    message = 'Feedback updated.' if result['updated'] else 'Thank you for your feedback!'
    return jsonify(dict(result, success=True, message=message, summary=ratings.rating_summary(session_id)))


@bp.route('/<session_id>/ratings')
def session_ratings(session_id):
    lifecycle.load_session(session_id)
    return jsonify({
        'success': True,
        'summary': ratings.rating_summary(session_id),
        'reviews': ratings.list_reviews(session_id, limit=request.args.get('limit', type=int)),
    })
