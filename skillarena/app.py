import os
import logging
from datetime import datetime

from flask import Flask, request, jsonify
from flask_login import LoginManager, current_user, login_required
import redis
from sqlalchemy.exc import SQLAlchemyError

from .config import config
from .errors import SkillArenaError, InvalidArgument, RemoteUnavailable
from .identity import IdentityResolver
from .listings import ListingFacade
from .models import db, User
from .presence import PresenceTracker
from .relationships import RelationshipEngine
from .roster import TournamentRoster, RegistrationResult
from shared.pubsub import EventPublisher, connect

logger = logging.getLogger(__name__)

login_manager = LoginManager()


@login_manager.user_loader
def load_user(user_id: str):
    return db.session.get(User, user_id)


@login_manager.unauthorized_handler
def unauthorized():
    return jsonify({'error': 'Authentication required'}), 401


def create_app(config_name: str = None, redis_client: redis.Redis = None) -> Flask:
    """Application factory for the SkillArena service."""
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config[config_name])

    # Initialize extensions
    db.init_app(app)
    login_manager.init_app(app)

    # Initialize services
    if redis_client is None:
        redis_client = connect(app.config.get('REDIS_URL'))
    app.redis = redis_client

    publisher = EventPublisher(redis_client)
    app.presence = PresenceTracker(redis_client)
    app.identity = IdentityResolver(
        presence=app.presence,
        publisher=publisher,
        min_password_length=app.config['MIN_PASSWORD_LENGTH'],
        search_limit=app.config['USERNAME_SEARCH_LIMIT']
    )
    app.relationships = RelationshipEngine(app.identity, publisher)
    app.roster = TournamentRoster(app.identity, publisher)
    app.listings = ListingFacade(app.identity, app.relationships, app.roster)

    # Create tables
    with app.app_context():
        db.create_all()

    register_error_handlers(app)
    register_api_routes(app)

    from .routes import social
    app.register_blueprint(social.bp)

    return app


def register_error_handlers(app: Flask):

    @app.errorhandler(SkillArenaError)
    def handle_domain_error(e: SkillArenaError):
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(SQLAlchemyError)
    def handle_database_error(e: SQLAlchemyError):
        db.session.rollback()
        logger.error(f"Database error on {request.path}: {e}")
        return jsonify(RemoteUnavailable("Database unavailable, please retry").to_dict()), 503

    @app.errorhandler(redis.exceptions.RedisError)
    def handle_redis_error(e: redis.exceptions.RedisError):
        logger.error(f"Redis error on {request.path}: {e}")
        return jsonify(RemoteUnavailable("Presence service unavailable, please retry").to_dict()), 503


def parse_datetime(value) -> datetime:
    if not value:
        raise InvalidArgument("Tournament date is required")
    try:
        return datetime.fromisoformat(str(value).replace('Z', '+00:00'))
    except ValueError:
        raise InvalidArgument(f"Invalid date '{value}', expected ISO 8601")


def parse_int(value, field: str) -> int:
    """Accept ints and integral strings such as form input "16"."""
    if isinstance(value, bool) or isinstance(value, float):
        raise InvalidArgument(f"{field} must be an integer")
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgument(f"{field} must be an integer")


def register_api_routes(app: Flask):
    """Register tournament and health routes."""

    # ==================== Tournaments ====================

    @app.route('/api/v1/tournaments', methods=['GET'])
    def api_list_tournaments():
        """List tournaments, latest date first. Optional limit/offset paging."""
        status = request.args.get('status')
        limit = request.args.get('limit')
        tournaments = app.listings.tournament_cards(
            status=status,
            limit=parse_int(limit, 'limit') if limit is not None else None,
            offset=parse_int(request.args.get('offset', 0), 'offset')
        )

        return jsonify({
            'tournaments': tournaments,
            'count': len(tournaments)
        })

    @app.route('/api/v1/tournaments', methods=['POST'])
    @login_required
    def api_create_tournament():
        """Create a new tournament."""
        data = request.json or {}

        tournament = app.roster.create_tournament(
            creator_id=current_user.id,
            name=data.get('name'),
            game=data.get('game'),
            max_participants=parse_int(data.get('maxParticipants'), 'maxParticipants'),
            scheduled_at=parse_datetime(data.get('date')),
            prize=data.get('prize')
        )

        return jsonify({
            'message': 'Tournament created',
            'tournament': tournament.to_dict()
        }), 201

    @app.route('/api/v1/tournaments/<tournament_id>', methods=['GET'])
    def api_get_tournament(tournament_id: str):
        """Tournament details with participant summaries."""
        viewer_id = current_user.id if current_user.is_authenticated else None
        return jsonify(app.listings.tournament_detail(tournament_id, viewer_id=viewer_id))

    @app.route('/api/v1/tournaments/<tournament_id>/register', methods=['POST'])
    @login_required
    def api_register(tournament_id: str):
        """Join a tournament as the current user."""
        result = app.roster.register(tournament_id, current_user.id)

        messages = {
            RegistrationResult.REGISTERED: ('You are registered for the tournament', 201),
            RegistrationResult.ALREADY_REGISTERED: ('You are already registered for this tournament', 200),
            RegistrationResult.FULL: ('This tournament is full', 409),
            RegistrationResult.CLOSED: ('This tournament is not open for registration', 409),
        }
        message, code = messages[result]
        return jsonify({'result': result.value, 'message': message}), code

    @app.route('/api/v1/tournaments/<tournament_id>/status', methods=['POST'])
    @login_required
    def api_advance_status(tournament_id: str):
        """Start or complete a tournament (creator only)."""
        tournament = app.roster.get_tournament(tournament_id)
        if tournament.created_by != current_user.id:
            return jsonify({'error': 'Only the organizer can change the tournament status'}), 403

        action = (request.json or {}).get('action')
        if not action:
            return jsonify({'error': 'action is required'}), 400

        tournament = app.roster.advance_status(tournament_id, action)
        return jsonify({'tournament': tournament.to_dict()})

    # ==================== Health Check ====================

    @app.route('/health')
    def health_check():
        """Health check endpoint."""
        if app.redis is None:
            redis_status = 'disabled'
        else:
            try:
                app.redis.ping()
                redis_status = 'connected'
            except redis.exceptions.RedisError:
                redis_status = 'disconnected'

        try:
            db.session.execute(db.text('SELECT 1'))
            db_ok = True
        except SQLAlchemyError:
            db.session.rollback()
            db_ok = False

        healthy = db_ok and redis_status != 'disconnected'
        return jsonify({
            'status': 'healthy' if healthy else 'unhealthy',
            'redis': redis_status,
            'database': 'connected' if db_ok else 'disconnected'
        }), 200 if healthy else 503
