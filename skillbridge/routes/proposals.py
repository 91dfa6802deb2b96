from flask import Blueprint, request, jsonify
from skillbridge.decorators import auth_required, get_current_user
from skillbridge.forms import InterviewForm, ProposalMessageForm, SpeakerProposalForm, validated
from skillbridge.services import speaker_workflow as workflow
from skillbridge.firestore_models import utcnow

bp = Blueprint('proposals', __name__, url_prefix='/speaker-proposals')


@bp.route('', methods=['POST'])
@auth_required
def submit():
    form = validated(SpeakerProposalForm)
    proposal = workflow.submit_proposal(
        get_current_user(),
        year=form.year.data,
        resume=form.resume.data,
        name=form.name.data,
        email=form.email.data,
        linkedin=form.linkedin.data,
        phone=form.phone.data,
    )
    return jsonify({
        'success': True,
        'message': 'Proposal submitted successfully!',
        'proposal': workflow.proposal_view(proposal),
    }), 201


@bp.route('')
@auth_required
def list_proposals():
    now = utcnow()
    proposals = workflow.list_proposals(get_current_user(), request.args.get('status') or None, now)
    return jsonify({'success': True, 'proposals': [workflow.proposal_view(p, now) for p in proposals]})


@bp.route('/<proposal_id>')
@auth_required
def detail(proposal_id):
    proposal = workflow.get_proposal_for(proposal_id, get_current_user())
    return jsonify({'success': True, 'proposal': workflow.proposal_view(proposal)})


@bp.route('/<proposal_id>/approve', methods=['POST'])
@auth_required
def approve(proposal_id):
    proposal = workflow.approve_proposal(proposal_id, get_current_user())
    return jsonify({'success': True, 'proposal': workflow.proposal_view(proposal)})


@bp.route('/<proposal_id>/reject', methods=['POST'])
@auth_required
def reject(proposal_id):
    form = validated(ProposalMessageForm)
    proposal = workflow.reject_proposal(proposal_id, get_current_user(), form.message.data)
    return jsonify({'success': True, 'proposal': workflow.proposal_view(proposal)})


@bp.route('/<proposal_id>/schedule', methods=['POST'])
@auth_required
def schedule(proposal_id):
    form = validated(InterviewForm)
    user = get_current_user()
    args = (proposal_id, user, form.interview_date.data, form.interview_time.data, form.interview_venue.data)
    # the faculty dashboard approves and schedules in one step
    if request.args.get('approve') in ('1', 'true'):
        proposal = workflow.approve_and_schedule(*args)
    else:
        proposal = workflow.schedule_interview(*args)
    return jsonify({'success': True, 'proposal': workflow.proposal_view(proposal)})


@bp.route('/<proposal_id>/final-approve', methods=['POST'])
@auth_required
def final_approve(proposal_id):
    result = workflow.final_approve(proposal_id, get_current_user())
    return jsonify({
        'success': True,
        'message': result['warning']['message'] if result['warning'] else 'Final approval recorded.',
        'proposal': workflow.proposal_view(result['proposal']),
        'promoted_uid': result['promoted_uid'],
        'warning': result['warning'],
    })


@bp.route('/<proposal_id>/final-disapprove', methods=['POST'])
@auth_required
def final_disapprove(proposal_id):
    form = validated(ProposalMessageForm)
    result = workflow.final_disapprove(proposal_id, get_current_user(), form.message.data)
    return jsonify({
        'success': True,
        'message': 'Final disapproval recorded.',
        'proposal': workflow.proposal_view(result['proposal']),
    })
