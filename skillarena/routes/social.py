from flask import Blueprint, request, jsonify, current_app
from flask_login import current_user, login_required, login_user, logout_user

bp = Blueprint('social', __name__, url_prefix='/api/v1')


# --- Auth ---

@bp.route('/auth/register', methods=['POST'])
def register():
    """Create an account and start a session."""
    data = request.json or {}
    user = current_app.identity.sign_up(
        username=data.get('username'),
        email=data.get('email'),
        password=data.get('password')
    )
    login_user(user)
    current_app.presence.mark_online(user.id)
    return jsonify({'message': 'Account created', 'user': user.to_dict(include_private=True)}), 201


@bp.route('/auth/login', methods=['POST'])
def login():
    data = request.json or {}
    user = current_app.identity.authenticate(data.get('email'), data.get('password'))
    login_user(user)
    current_app.presence.mark_online(user.id)
    return jsonify({'user': user.to_dict(include_private=True)})


@bp.route('/auth/logout', methods=['POST'])
@login_required
def logout():
    current_app.presence.mark_offline(current_user.id)
    logout_user()
    return jsonify({'message': 'Signed out'})


# --- Users ---

@bp.route('/users/me', methods=['GET'])
@login_required
def me():
    """Profile, friends, pending requests and tournaments of the current user."""
    return jsonify(current_app.listings.dashboard(current_user.id))


@bp.route('/users/me', methods=['PATCH'])
@login_required
def update_me():
    data = request.json or {}
    if 'username' in data:
        return jsonify({'error': 'Username cannot be changed'}), 400

    user = current_app.identity.update_profile(
        current_user.id,
        bio=data.get('bio'),
        profile_picture=data.get('profilePicture')
    )
    return jsonify({'user': user.to_dict(include_private=True)})


@bp.route('/users/search', methods=['GET'])
@login_required
def search_users():
    results = current_app.listings.find_players(request.args.get('q', ''), current_user.id)
    return jsonify({'users': results, 'count': len(results)})


@bp.route('/users/<user_id>', methods=['GET'])
@login_required
def get_user(user_id: str):
    user = current_app.identity.get_profile(user_id)
    data = user.to_dict()
    data['online'] = current_app.presence.is_online(user.id)
    return jsonify(data)


# --- Friends ---

@bp.route('/friends', methods=['GET'])
@login_required
def list_friends():
    friends = current_app.relationships.list_friends(current_user.id)
    return jsonify({'friends': friends, 'count': len(friends)})


@bp.route('/friends/requests', methods=['GET'])
@login_required
def list_requests():
    engine = current_app.relationships
    requests = engine.list_incoming_requests(current_user.id)
    return jsonify({'requests': engine.serialize_requests(requests), 'count': len(requests)})


@bp.route('/friends/requests', methods=['POST'])
@login_required
def send_request():
    data = request.json or {}
    friend_request = current_app.relationships.send_request(current_user.id, data.get('to'))
    return jsonify({'message': 'Friend request sent', 'request': friend_request.to_dict()}), 201


@bp.route('/friends/requests/<request_id>/accept', methods=['POST'])
@login_required
def accept_request(request_id: str):
    friend_request = current_app.relationships.accept_request(request_id, acting_user_id=current_user.id)
    return jsonify({'request': friend_request.to_dict()})


@bp.route('/friends/requests/<request_id>/reject', methods=['POST'])
@login_required
def reject_request(request_id: str):
    friend_request = current_app.relationships.reject_request(request_id, acting_user_id=current_user.id)
    return jsonify({'request': friend_request.to_dict()})
