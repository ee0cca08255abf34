import os
import secrets
from dotenv import load_dotenv
from typing import Optional

# Find the absolute path of the root directory
basedir = os.path.abspath(os.path.dirname(__file__))

# Load the .env file from the root directory
load_dotenv(os.path.join(basedir, '.env'))


class ConfigurationError(Exception):
    """Raised when required configuration is missing or invalid"""
    pass


def _env_bool(key: str, default: str = 'false') -> bool:
    return os.environ.get(key, default).lower() in ('1', 'true', 'yes')


class Config:
    """
    Base configuration class. Contains default configuration settings
    and settings applicable to all environments.
    """
    SECRET_KEY = os.environ.get('SECRET_KEY') or secrets.token_hex(32)
    FLASK_ENV = os.environ.get('FLASK_ENV')

    # Source A - CX3ads affiliate API
    CX3ADS_BASE_URL = os.environ.get('CX3ADS_BASE_URL', 'https://publisher.cx3ads.com/affiliates/api')
    CX3ADS_API_KEY = os.environ.get('CX3ADS_API_KEY')
    CX3ADS_AFFILIATE_ID = os.environ.get('CX3ADS_AFFILIATE_ID')
    # CX3ads returns naive local dates
    CX3ADS_SOURCE_TIMEZONE = os.environ.get('CX3ADS_SOURCE_TIMEZONE', 'America/New_York')

    # Source B - Everflow affiliate API
    EVERFLOW_BASE_URL = os.environ.get('EVERFLOW_BASE_URL', 'https://api.eflow.team/v1')
    EVERFLOW_API_KEY = os.environ.get('EVERFLOW_API_KEY')
    EVERFLOW_TIMEZONE_ID = int(os.environ.get('EVERFLOW_TIMEZONE_ID') or 90)

    # Reports panel
    REPORTS_NEW_FLAG_SECONDS = float(os.environ.get('REPORTS_NEW_FLAG_SECONDS') or 5)
    REPORTS_DEFAULT_ROWS_PER_PAGE = int(os.environ.get('REPORTS_DEFAULT_ROWS_PER_PAGE') or 10)
    REPORTS_FETCH_LIMIT = int(os.environ.get('REPORTS_FETCH_LIMIT') or 10)
    REPORTS_EXCLUDE_BOT_TRAFFIC = _env_bool('REPORTS_EXCLUDE_BOT_TRAFFIC')

    HTTP_TIMEOUT_SECONDS = float(os.environ.get('HTTP_TIMEOUT_SECONDS') or 30)

    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')
    SENTRY_DSN = os.environ.get('SENTRY_DSN')

    JSON_SORT_KEYS = False

    REQUIRED_VARS = ['CX3ADS_API_KEY', 'CX3ADS_AFFILIATE_ID', 'EVERFLOW_API_KEY']

    @classmethod
    def validate_required_config(cls) -> None:
        """Validate that all required configuration is present"""
        if os.environ.get('FLASK_ENV') == 'testing' or os.environ.get('SKIP_ENV_VALIDATION'):
            return

        missing_vars = [var for var in cls.REQUIRED_VARS if not getattr(cls, var, None)]

        if missing_vars:
            raise ConfigurationError(
                f"Missing required environment variables: {', '.join(missing_vars)}"
            )

    @classmethod
    def init_app(cls, app):
        """Initialize application with this config"""
        pass


class DevelopmentConfig(Config):
    """Development environment configuration"""
    DEBUG = True
    TESTING = False
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'DEBUG')


class TestingConfig(Config):
    """Testing environment configuration"""
    TESTING = True
    DEBUG = True

    # Source clients are mocked in tests, never called
    CX3ADS_API_KEY = 'test-cx3ads-key'
    CX3ADS_AFFILIATE_ID = '1000'
    CX3ADS_SOURCE_TIMEZONE = 'UTC'
    EVERFLOW_API_KEY = 'test-everflow-key'

    HTTP_TIMEOUT_SECONDS = 1.0


class ProductionConfig(Config):
    """Production environment configuration"""
    DEBUG = False
    TESTING = False

    @classmethod
    def init_app(cls, app):
        """Production-specific initialization"""
        Config.init_app(app)

        # Validate all required config
        cls.validate_required_config()

        # Log to syslog in production
        import logging
        from logging.handlers import SysLogHandler
        syslog_handler = SysLogHandler()
        syslog_handler.setLevel(logging.WARNING)
        app.logger.addHandler(syslog_handler)


# Configuration dictionary
config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}


def get_config(config_name: Optional[str] = None) -> type:
    """Get configuration class based on environment"""
    if config_name is None:
        config_name = os.environ.get('FLASK_ENV', 'development')

    return config.get(config_name, DevelopmentConfig)
