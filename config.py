# GFI Tracker Dashboard Service Configuration

import os
from datetime import timedelta
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.absolute()


def _flag(name, default='False'):
    return os.environ.get(name, default).lower() in ['true', 'on', '1']


class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'gfi-tracker-dashboard-secret'

    # REST API Configuration
    API_BASE_URL = os.environ.get('GFI_API_URL') or 'http://localhost:5000/api'
    API_TIMEOUT = int(os.environ.get('GFI_API_TIMEOUT') or 15)  # seconds
    API_CACHE_MAX_AGE = 120  # seconds
    API_CACHE_MAX_BYTES = 4_500_000  # larger responses are not cached

    # Local store Configuration
    DATABASE_PATH = BASE_DIR / 'database' / 'gfi_tracker.db'

    # Upload / Export Configuration
    EXPORTS_FOLDER = BASE_DIR / 'exports'
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max upload
    ALLOWED_IMPORT_EXTENSIONS = {'xlsx', 'xls', 'csv'}
    EXPORTS_RETENTION_DAYS = 30

    # Session Configuration
    PERMANENT_SESSION_LIFETIME = timedelta(hours=8)
    SESSION_COOKIE_SECURE = False
    SESSION_COOKIE_HTTPONLY = True
    SESSION_COOKIE_SAMESITE = 'Lax'

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'gfi_tracker.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    DEBUG = _flag('DEBUG')
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        directories = [cls.EXPORTS_FOLDER, cls.LOG_FILE.parent]
        if cls.DATABASE_PATH != ':memory:':
            directories.append(Path(cls.DATABASE_PATH).parent)

        for directory in directories:
            Path(directory).mkdir(parents=True, exist_ok=True)

        app.config.from_object(cls)


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    DATABASE_PATH = BASE_DIR / 'database' / 'gfi_tracker_dev.db'
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    # Use in-memory database for testing
    DATABASE_PATH = ':memory:'
    API_BASE_URL = 'http://api.test/api'
    API_TIMEOUT = 1


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    SESSION_COOKIE_SECURE = True  # Requires HTTPS
    LOG_LEVEL = 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        import logging
        from logging.handlers import RotatingFileHandler

        if not app.debug:
            file_handler = RotatingFileHandler(
                cls.LOG_FILE,
                maxBytes=cls.LOG_MAX_BYTES,
                backupCount=cls.LOG_BACKUP_COUNT
            )
            file_handler.setFormatter(logging.Formatter(
                '%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'
            ))
            file_handler.setLevel(logging.INFO)
            app.logger.addHandler(file_handler)

            app.logger.setLevel(logging.INFO)
            app.logger.info('GFI Tracker dashboard startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config():
    """Get configuration based on environment variable"""
    return config.get(os.environ.get('FLASK_ENV', 'default'), DevelopmentConfig)


def validate_config(config_class=Config):
    """Validate configuration settings"""
    errors = []

    if not config_class.API_BASE_URL:
        errors.append("API_BASE_URL is required")
    elif not str(config_class.API_BASE_URL).startswith(('http://', 'https://')):
        errors.append(f"API_BASE_URL must be an http(s) URL: {config_class.API_BASE_URL}")

    if config_class.API_TIMEOUT <= 0:
        errors.append("API_TIMEOUT must be positive")

    if config_class.API_CACHE_MAX_AGE < 0:
        errors.append("API_CACHE_MAX_AGE cannot be negative")

    if config_class is ProductionConfig and config_class.SECRET_KEY == Config.SECRET_KEY and not os.environ.get('SECRET_KEY'):
        errors.append("SECRET_KEY must be set in production")

    return errors


def init_config(app, config_name=None):
    """Initialize application with configuration"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')

    config_class = config.get(config_name, DevelopmentConfig)

    errors = validate_config(config_class)
    if errors:
        for error in errors:
            app.logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    config_class.init_app(app)
    return config_class
