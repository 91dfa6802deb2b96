from flask import Blueprint, jsonify
from skillbridge.decorators import auth_required, get_current_user
from skillbridge import firestore_dao as dao
from skillbridge.firestore_models import UserProfile

bp = Blueprint('main', __name__)


@bp.route('/health')
def health():
    return jsonify({'status': 'ok'}), 200


@bp.route('/me')
@auth_required
def me():
    user = get_current_user()
    profile = UserProfile.from_dict(dao.get_user(user.uid) or {}, user.uid)
    return jsonify({
        'success': True,
        'user': {
            'uid': profile.uid,
            'displayName': user.display_name,
            'email': profile.email,
            'role': profile.role,
            'isApproved': user.is_approved,
            'promotedAt': profile.promoted_at,
        },
    })
