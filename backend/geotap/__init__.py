"""GeoTap Attendance - Application Factory."""
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
limiter = Limiter(
    key_func=get_remote_address,
    default_limits=["200 per day", "50 per hour"]
)

def create_app(config_name: str = None) -> Flask:
    """Application factory pattern."""
    app = Flask(__name__)

    # Load configuration
    from geotap.config import get_config
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
            'service': 'GeoTap Attendance',
            'version': '1.0.0'
        })

    return app

def register_blueprints(app: Flask) -> None:
    """Register all application blueprints."""
    from geotap.api.attendance import attendance_bp
    from geotap.api.classrooms import classrooms_bp
    from geotap.api.dashboard import dashboard_bp
    from geotap.api.profiles import profile_bp, admin_profiles_bp

    # Core Features
    app.register_blueprint(attendance_bp, url_prefix='/api/attendance')
    app.register_blueprint(profile_bp, url_prefix='/api/profile')

    # Admin Management
    app.register_blueprint(classrooms_bp, url_prefix='/api/admin/classrooms')
    app.register_blueprint(admin_profiles_bp, url_prefix='/api/admin/profiles')
    app.register_blueprint(dashboard_bp, url_prefix='/api/dashboard')

def register_error_handlers(app: Flask) -> None:
    """Register error handlers."""
    from geotap.utils.errors import AttendanceError
    from geotap.utils.helpers import handle_error, error_response
    from werkzeug.exceptions import HTTPException

    @app.errorhandler(AttendanceError)
    def attendance_error(error):
        if error.status_code >= 500:
            app.logger.error('%s: %s', error.code, error.message)
        else:
            app.logger.warning('%s: %s', error.code, error.message)
        return error_response(error.message, error.status_code, code=error.code)

    @app.errorhandler(400)
    def bad_request(error):
        return handle_error(error, 400)

    @app.errorhandler(404)
    def not_found(error):
        return handle_error(error, 404)

    @app.errorhandler(500)
    def internal_error(error):
        db.session.rollback()
        return handle_error(error, 500)

    @app.errorhandler(HTTPException)
    def handle_exception(e):
        return handle_error(e, e.code)

    # JWT error handlers
    @jwt.expired_token_loader
    def expired_token_callback(jwt_header, jwt_payload):
        return error_response('Token has expired', 401, code='unauthenticated')

    @jwt.invalid_token_loader
    def invalid_token_callback(error):
        return error_response('Invalid token', 401, code='unauthenticated')

    @jwt.unauthorized_loader
    def missing_token_callback(error):
        return error_response('Authorization token required', 401, code='unauthenticated')

def setup_logging(app: Flask) -> None:
    """Setup application logging."""
    app.logger.setLevel(app.config.get('LOG_LEVEL', 'INFO'))

    if not app.debug and not app.testing:
        log_file = app.config.get('LOG_FILE', 'logs/app.log')
        log_dir = os.path.dirname(log_file)
        if log_dir and not os.path.exists(log_dir):
            os.makedirs(log_dir)

        file_handler = logging.FileHandler(log_file)
        file_handler.setFormatter(logging.Formatter(
            '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
        ))
        file_handler.setLevel(logging.INFO)
        app.logger.addHandler(file_handler)

        app.logger.info('GeoTap Attendance startup')

def setup_database(app: Flask) -> None:
    """Setup database connections."""
    with app.app_context():
        # Import all models so metadata and immutability hooks are registered
        from geotap.models import (
            Profile, ProfileRole, Classroom,
            AttendanceLog, AttendanceStatus, TokenRotationLog
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

    @app.cli.command('seed-db')
    def seed_db():
        """Seed database with sample classrooms and profiles."""
        from geotap.services.seed_service import SeedService

        summary = SeedService.seed_all()
        click.echo(f"Seeded {summary['profiles']} profiles and {summary['classrooms']} classrooms.")

    @app.cli.command('create-admin')
    @click.option('--identity-id', default=None, help='Identity id issued by the identity provider')
    def create_admin(identity_id):
        """Create admin profile."""
        from geotap.models import Profile, ProfileRole
        from sqlalchemy.exc import IntegrityError

        email = click.prompt('Admin email')
        full_name = click.prompt('Admin name')

        admin = Profile(
            email=email.strip().lower(),
            full_name=full_name.strip(),
            role=ProfileRole.ADMIN
        )
        if identity_id:
            admin.id = identity_id

        try:
            admin.save()
        except IntegrityError as e:
            db.session.rollback()
            raise click.ClickException(f'Error creating admin: {e.orig}')
        click.echo(f'Admin profile created: {admin.email} ({admin.id})')

    @app.cli.command('create-classroom')
    @click.option('--name', required=True)
    @click.option('--building', required=True)
    @click.option('--latitude', required=True, type=float)
    @click.option('--longitude', required=True, type=float)
    @click.option('--radius', type=float, default=None, help='Geofence radius in meters')
    def create_classroom(name, building, latitude, longitude, radius):
        """Create a classroom with a freshly generated tag secret."""
        from geotap.services.classroom_service import ClassroomService
        from geotap.utils.errors import AttendanceError

        try:
            classroom = ClassroomService.create_classroom({
                'name': name,
                'building': building,
                'latitude': latitude,
                'longitude': longitude,
                'geofence_radius_meters': radius
            })
        except AttendanceError as e:
            raise click.ClickException(e.message)
        click.echo(f'Classroom {classroom.name} created: {classroom.id}')
        click.echo(f'Tag payload: {classroom.tag_payload()}')
