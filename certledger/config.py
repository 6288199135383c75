# config.py
# Manages application configuration for different environments using python-dotenv.

import os
from dotenv import load_dotenv

basedir = os.path.abspath(os.path.dirname(__file__))
PROJECT_ROOT = os.path.dirname(basedir)

load_dotenv(os.path.join(PROJECT_ROOT, '.env'))  # Load .env from the project root

DEFAULT_JWT_SECRET = 'a-strong-jwt-secret-key'


class Config:
    """Base configuration class with settings common to all environments."""
    SECRET_KEY = os.environ.get('SECRET_KEY') or 'a-very-hard-to-guess-default-secret-key'
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    # Bearer tokens are minted by the external identity provider and signed with
    # its shared JWT secret; this service only validates them.
    JWT_SECRET_KEY = os.environ.get('JWT_SECRET_KEY') or DEFAULT_JWT_SECRET
    JWT_DECODE_AUDIENCE = os.environ.get('JWT_DECODE_AUDIENCE') or None
    JWT_TOKEN_LOCATION = ["headers"]
    JWT_IDENTITY_CLAIM = 'sub'

    # "sql" keeps records in the kv_store table, "memory" in a process-local dict.
    KV_STORE_BACKEND = os.environ.get('KV_STORE_BACKEND') or 'sql'

    OPENAI_API_KEY = os.environ.get('OPENAI_API_KEY')
    VISION_API_URL = os.environ.get('VISION_API_URL') or 'https://api.openai.com/v1/chat/completions'
    VISION_MODEL = os.environ.get('VISION_MODEL') or 'gpt-4o'
    VISION_TIMEOUT = float(os.environ.get('VISION_TIMEOUT') or 60)

    LEDGER_CHANNEL_NAME = os.environ.get('LEDGER_CHANNEL_NAME') or 'certificate-channel'
    LEDGER_CHAINCODE_NAME = os.environ.get('LEDGER_CHAINCODE_NAME') or 'certificate-cc'
    LEDGER_NETWORK = os.environ.get('LEDGER_NETWORK') or 'hyperledger-fabric'

    CERTIFICATE_ID_MAX_ATTEMPTS = int(os.environ.get('CERTIFICATE_ID_MAX_ATTEMPTS') or 10)

    @staticmethod
    def init_app(app):
        pass


class DevelopmentConfig(Config):
    """Configuration for the development environment."""
    DEBUG = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('DEV_DATABASE_URL') or \
        'sqlite:///' + os.path.join(PROJECT_ROOT, 'instance', 'certledger-dev.db')


class TestingConfig(Config):
    """Configuration for the testing environment."""
    TESTING = True
    SQLALCHEMY_DATABASE_URI = os.environ.get('TEST_DATABASE_URL') or 'sqlite:///:memory:'
    KV_STORE_BACKEND = 'memory'
    JWT_SECRET_KEY = 'testing-jwt-secret-key-of-sufficient-length'
    JWT_DECODE_AUDIENCE = None
    OPENAI_API_KEY = None


class ProductionConfig(Config):
    """Configuration for the production environment."""
    DEBUG = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL')

    @classmethod
    def init_app(cls, app):
        Config.init_app(app)
        if not cls.SQLALCHEMY_DATABASE_URI:
            raise ValueError("DATABASE_URL is not set for the production environment.")
        if cls.JWT_SECRET_KEY == DEFAULT_JWT_SECRET:
            raise ValueError("JWT_SECRET_KEY must be set to the identity provider's secret in production.")


config = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
    'default': DevelopmentConfig
}
