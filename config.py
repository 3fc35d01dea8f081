# Student Registry Configuration

import os
from pathlib import Path

# Base directory
BASE_DIR = Path(__file__).parent.absolute()

class Config:
    """Base configuration class"""

    # Flask Configuration
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'student-registry-secret-key-2025'

    # Database Configuration
    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'students.db')

    # Storage Configuration
    STORAGE_FOLDER = Path(os.environ.get('STORAGE_FOLDER') or BASE_DIR / 'storage')
    PUBLIC_BASE_URL = os.environ.get('PUBLIC_BASE_URL') or 'http://localhost:5000'
    MAX_CONTENT_LENGTH = 16 * 1024 * 1024  # 16MB max upload size

    # Blob paths are namespaced by role
    STUDENT_IMAGE_FOLDER = 'students'
    PARENT_IMAGE_FOLDER = 'parents'
    QR_CODE_FOLDER = 'qr_codes'
    ALLOWED_IMAGE_EXTENSIONS = {'png', 'jpg', 'jpeg', 'gif', 'webp'}

    # QR Code Configuration
    QR_CODE_VERSION = 1
    QR_CODE_ERROR_CORRECT = 'M'  # Medium error correction
    QR_CODE_BOX_SIZE = 10
    QR_CODE_BORDER = 4
    QR_CODE_FILL_COLOR = 'black'
    QR_CODE_BACK_COLOR = 'white'

    # Scanner Configuration
    SCANNER_CAMERA_INDEX = int(os.environ.get('SCANNER_CAMERA_INDEX') or 0)
    SCANNER_FPS = 10
    SCANNER_TIMEOUT_SECONDS = 30

    # Delete Configuration
    DELETE_CLEANUP_BLOBS = os.environ.get('DELETE_CLEANUP_BLOBS', 'False').lower() in ['true', 'on', '1']

    # Logging Configuration
    LOG_LEVEL = os.environ.get('LOG_LEVEL') or 'INFO'
    LOG_FILE = BASE_DIR / 'logs' / 'students.log'
    LOG_MAX_BYTES = 10 * 1024 * 1024  # 10MB
    LOG_BACKUP_COUNT = 5

    # Development Configuration
    DEBUG = os.environ.get('DEBUG', 'False').lower() in ['true', 'on', '1']
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Initialize application configuration"""
        # Set Flask configuration from the upper-case class attributes
        app.config.update({
            key: getattr(cls, key) for key in dir(cls) if key.isupper()
        })


class DevelopmentConfig(Config):
    """Development configuration"""
    DEBUG = True
    TESTING = False

    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'students_dev.db')

    # More verbose logging
    LOG_LEVEL = 'DEBUG'


class TestingConfig(Config):
    """Testing configuration"""
    TESTING = True
    DEBUG = True

    PUBLIC_BASE_URL = 'http://testserver'
    SCANNER_TIMEOUT_SECONDS = 1


class ProductionConfig(Config):
    """Production configuration"""
    DEBUG = False
    TESTING = False

    DATABASE_PATH = Path(os.environ.get('DATABASE_PATH') or BASE_DIR / 'database' / 'students_prod.db')

    # Production logging
    LOG_LEVEL = 'WARNING'

    @classmethod
    def init_app(cls, app):
        super().init_app(app)

        # Production-specific initialization
        import logging
        from logging.handlers import RotatingFileHandler

        # Setup file logging
        if not app.debug:
            Path(cls.LOG_FILE).parent.mkdir(parents=True, exist_ok=True)
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
            app.logger.info('Student Registry startup')


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


# Validation functions
def validate_config(app_config):
    """Validate configuration settings"""
    errors = []

    if not app_config.get('PUBLIC_BASE_URL'):
        errors.append("PUBLIC_BASE_URL is required to build student locators")
    elif not str(app_config['PUBLIC_BASE_URL']).startswith(('http://', 'https://')):
        errors.append(f"PUBLIC_BASE_URL must be an http(s) origin: {app_config['PUBLIC_BASE_URL']}")

    if app_config.get('QR_CODE_ERROR_CORRECT') not in ('L', 'M', 'Q', 'H'):
        errors.append(f"Unknown QR error correction level: {app_config.get('QR_CODE_ERROR_CORRECT')}")

    if app_config.get('SCANNER_FPS', 0) <= 0:
        errors.append("SCANNER_FPS must be positive")

    # Check storage and database directories
    directories = [Path(app_config['STORAGE_FOLDER'])]
    if str(app_config['DATABASE_PATH']) != ':memory:':
        directories.append(Path(app_config['DATABASE_PATH']).parent)

    for directory in directories:
        if not directory.exists():
            try:
                directory.mkdir(parents=True, exist_ok=True)
            except OSError as e:
                errors.append(f"Cannot create directory {directory}: {e}")

    return errors


# Initialize configuration
def init_config(app, config_name=None, overrides=None):
    """Initialize application with configuration"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'default')

    config_class = config.get(config_name, DevelopmentConfig)
    config_class.init_app(app)

    if overrides:
        app.config.update(overrides)

    # Validate configuration
    errors = validate_config(app.config)
    if errors:
        for error in errors:
            app.logger.error(f"Configuration error: {error}")
        raise RuntimeError("Configuration validation failed")

    return config_class
