"""Settings shared by every environment."""
import os
from datetime import timedelta

class BaseConfig:
    """Base configuration."""
    SECRET_KEY = os.getenv('SECRET_KEY') or 'dev-secret-key-change-in-production'
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_ECHO = False

    # JWT Configuration (tokens are minted by the identity provider)
    JWT_SECRET_KEY = os.getenv('JWT_SECRET_KEY') or 'jwt-secret-key-change-in-production'
    JWT_ACCESS_TOKEN_EXPIRES = timedelta(hours=2)
    JWT_ALGORITHM = 'HS256'

    # CORS
    CORS_ORIGINS = ["http://localhost:*", "http://127.0.0.1:*"]

    # Transport rate limiting (Flask-Limiter)
    RATELIMIT_STORAGE_URI = os.getenv('REDIS_URL') or 'memory://'
    RATELIMIT_DEFAULT = "200 per day, 50 per hour"
    MARK_ATTENDANCE_HTTP_LIMIT = "30 per minute"

    # Attendance decision engine
    ATTENDANCE_RATE_LIMIT_SECONDS = 60
    GEOFENCE_RADIUS_METERS = 50.0
    ATTENDANCE_LATENCY_BUDGET_MS = 200
    ATTENDANCE_SERIALIZE_PER_IDENTITY = True

    # Token rotation
    TOKEN_ROTATION_HISTORY_LIMIT = 10
    GENERATED_SECRET_BYTES = 24

    # Pagination
    DEFAULT_PAGE_SIZE = 20
    MAX_PAGE_SIZE = 100

    # Logging
    LOG_LEVEL = 'INFO'
    LOG_FILE = 'logs/app.log'
