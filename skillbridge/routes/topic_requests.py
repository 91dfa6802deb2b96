from flask import Blueprint, jsonify
from skillbridge.decorators import auth_required, get_current_user
from skillbridge.forms import TopicRequestForm, validated
from skillbridge.services import topic_requests

bp = Blueprint('topic_requests', __name__, url_prefix='/topic-requests')


@bp.route('', methods=['POST'])
@auth_required
def submit():
    form = validated(TopicRequestForm)
    topic_request = topic_requests.submit_topic_request(
        get_current_user(),
        topic=form.topic.data,
        description=form.description.data,
        preferred_date=form.preferred_date.data,
    )
    return jsonify({
        'success': True,
        'message': 'Request submitted. Speakers will review it.',
        'request': topic_request,
    }), 201


@bp.route('')
@auth_required
def list_requests():
    requests = topic_requests.list_topic_requests(get_current_user())
    return jsonify({'success': True, 'requests': requests, 'count': len(requests)})
