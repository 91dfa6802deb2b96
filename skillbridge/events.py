import json
import logging
from flask_socketio import emit, join_room, leave_room
from skillbridge import socketio
from skillbridge.decorators import get_current_user
from skillbridge import firestore_dao as dao
from skillbridge.firestore_models import ROLE_FACULTY, ROLE_SPEAKER

logger = logging.getLogger(__name__)


def _get_socket_user():
    """Get current user from the handshake credentials in Socket.IO events."""
    user = get_current_user()
    if user and user.is_authenticated:
        return user
    return None


@socketio.on('connect')
def handle_connect():
    user = _get_socket_user()
    if not user:
        return
    join_room(f'user_{user.uid}')
    if user.role == ROLE_FACULTY and user.is_approved:
        join_room('faculty')
    elif user.role == ROLE_SPEAKER:
        join_room('speakers')
    emit('connected', {'user_id': user.uid, 'role': user.role})


@socketio.on('watch_session')
def handle_watch_session(data):
    session_id = (data or {}).get('session_id')
    if not session_id:
        emit('error', {'message': 'Session ID required'})
        return
    if not dao.get_session(session_id):
        emit('error', {'message': 'Session not found'})
        return
    join_room(f'session_{session_id}')
    emit('watching', {'session_id': session_id})


@socketio.on('unwatch_session')
def handle_unwatch_session(data):
    session_id = (data or {}).get('session_id')
    if session_id:
        leave_room(f'session_{session_id}')


def make_broadcaster(app):
    """Outcome channel subscriber that relays outcomes to Socket.IO rooms."""

    def broadcast(event, payload, rooms):
        # round-trip through the app's JSON provider so datetimes serialize
        data = json.loads(app.json.dumps(payload))
        for room in rooms:
            socketio.emit(event, data, to=room)

    return broadcast
