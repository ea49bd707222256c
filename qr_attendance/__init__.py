"""QR Attendance - Application Factory."""
import logging
import os
from flask import Flask, jsonify
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address

# Initialize extensions
db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()
limiter = Limiter(key_func=get_remote_address)

def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from qr_attendance.config import get_config
    config_class = get_config(config_name)
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)

    # Configure CORS
    CORS(app, origins=app.config.get('CORS_ORIGINS', ["*"]))

    # Setup logging
    setup_logging(app)

    # Register blueprints
    register_blueprints(app)

    # Register error handlers
    register_error_handlers(app)

    # Setup database
    setup_database(app)

    # Add CLI commands
    register_commands(app)

    # Add health check
    @app.route('/health')
    def health_check():
        return jsonify({
            'status': 'healthy',
            'service': 'QR Attendance',
            'version': '1.0.0'
        })

    return app

def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from qr_attendance.api.auth import auth_bp
    from qr_attendance.api.sessions import sessions_bp
    from qr_attendance.api.attendance import attendance_bp
    from qr_attendance.api.admin import admin_bp

    app.register_blueprint(auth_bp, url_prefix='/api/auth')
    app.register_blueprint(sessions_bp, url_prefix='/api/sessions')
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')
    app.register_blueprint(admin_bp, url_prefix='/api/admin')

def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from pydantic import ValidationError
    from sqlalchemy.exc import SQLAlchemyError
    from werkzeug.exceptions import HTTPException
    from qr_attendance.errors import AttendanceError, Internal
    from qr_attendance.utils.helpers import handle_error, error_response

    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        return error_response(error.message, error.status_code,
                              kind=error.kind, details=error.details)

    @app.errorhandler(ValidationError)
    def validation_error(error):
        first = error.errors()[0]
        field = '.'.join(str(part) for part in first.get('loc', ()))
        message = f"{field}: {first['msg']}" if field else first['msg']
        return error_response(message, 400, kind='ValidationError')

    @app.errorhandler(SQLAlchemyError)
    def storage_error(error):
        db.session.rollback()
        app.logger.error('Storage error: %s', error, exc_info=True)
        return error_response(Internal.default_message, 500, kind=Internal.kind)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return error_response('Token has expired', 401)

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return error_response('Invalid token', 401)

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return error_response('Authorization token required', 401)

def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    if not app.debug and not app.testing:
        if not os.path.exists('logs'):
            os.mkdir('logs')

        file_handler = logging.FileHandler('logs/app.log')
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)

        app.logger.info('QR Attendance startup')

def setup_database(app: Flask) -> None:
    """Import all models so the metadata is complete."""
    with app.app_context():
        from qr_attendance.models import (  # noqa: F401
            User, AttendanceSession, AttendanceRecord, AuditLog
        )

def register_commands(app: Flask) -> None:
    """Register CLI commands."""
    import click

    @app.cli.command('init-db')
    @click.option('--drop', is_flag=True, help='Drop existing tables')
    def init_db(drop):
        """Initialize the database."""
        if drop:
            db.drop_all()
            click.echo('Dropped all tables.')

        db.create_all()
        click.echo('Created all tables.')

    @app.cli.command('create-admin')
    def create_admin():
        """Create admin user."""
        from sqlalchemy.exc import IntegrityError
        from qr_attendance.models.user import UserRole
        from qr_attendance.repository import AttendanceRepository

        email = click.prompt('Admin email')
        name = click.prompt('Admin name')
        password = click.prompt('Password', hide_input=True, confirmation_prompt=True)

        repository = AttendanceRepository()
        try:
            repository.create_user(email=email, name=name, password=password,
                                   role=UserRole.ADMIN)
            repository.commit()
            click.echo(f'Admin user created: {email}')
        except IntegrityError:
            repository.rollback()
            click.echo(f'Error creating admin: {email} already exists')

    @app.cli.command('rotate-qr')
    @click.argument('session_id', type=int)
    def rotate_qr(session_id):
        """Rotate a session's QR token on behalf of its teacher."""
        from qr_attendance.errors import AttendanceError
        from qr_attendance.identity import Identity
        from qr_attendance.models.user import UserRole
        from qr_attendance.repository import AttendanceRepository
        from qr_attendance.services.qr_service import QRService

        session = AttendanceRepository().get_session(session_id)
        if session is None:
            raise click.ClickException(f'Session {session_id} not found')

        try:
            token = QRService().rotate(session_id, Identity(session.teacher_id, UserRole.TEACHER))
        except AttendanceError as e:
            raise click.ClickException(e.message)

        click.echo(token.token)
        click.echo(f'Expires at {token.expires_at.isoformat()}; refresh in {token.refresh_in}s')
