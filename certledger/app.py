# certledger/app.py

import os
import logging
from logging.handlers import RotatingFileHandler
from flask import Flask, jsonify
from flask.logging import default_handler, has_level_handler
from flask_cors import CORS
from flask_jwt_extended import JWTManager
from werkzeug.exceptions import HTTPException, NotFound

from certledger.config import config
from certledger.errors import AuthorizationError, CertLedgerError
from certledger.extensions import init_services
from certledger.models import db
from certledger.seed import init_db_command, register_institution_command
from certledger.routes.auth import auth_bp
from certledger.routes.certificates import certificates_bp
from certledger.utils import iso_timestamp


def _error_response(error: CertLedgerError):
    return jsonify(error.to_dict()), error.status_code


def create_app(config_name=None, test_config=None, store=None, vision_client=None):
    if config_name is None:
        config_name = os.getenv('FLASK_CONFIG', 'default')

    PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
    INSTANCE_FOLDER_PATH = os.path.join(PROJECT_ROOT, 'instance')

    app = Flask(__name__, instance_path=INSTANCE_FOLDER_PATH)
    app.config.from_object(config[config_name])
    if test_config:
        app.config.update(test_config)
    config[config_name].init_app(app)

    os.makedirs(app.instance_path, exist_ok=True)

    db.init_app(app)
    CORS(app)
    jwt = JWTManager(app)

    @jwt.unauthorized_loader
    def handle_missing_token(reason):
        return _error_response(AuthorizationError("No access token provided"))

    @jwt.invalid_token_loader
    def handle_invalid_token(reason):
        app.logger.info(f"Rejected bearer token: {reason}")
        return _error_response(AuthorizationError("Unauthorized"))

    @jwt.expired_token_loader
    def handle_expired_token(jwt_header, jwt_payload):
        return _error_response(AuthorizationError("Access token has expired"))

    if app.config['KV_STORE_BACKEND'] == 'sql' and store is None:
        with app.app_context():
            db.create_all()

    init_services(app, store=store, vision_client=vision_client)

    app.register_blueprint(auth_bp, url_prefix='/auth')
    app.register_blueprint(certificates_bp, url_prefix='/certificates')

    package_logger = logging.getLogger('certledger')
    if app.debug:
        # Service modules log under certledger.*; route them to the console like app.logger.
        package_logger.setLevel(logging.INFO)
        if not has_level_handler(package_logger):
            package_logger.addHandler(default_handler)
    elif not app.testing:
        log_dir = os.path.join(PROJECT_ROOT, 'logs')
        os.makedirs(log_dir, exist_ok=True)
        file_handler = RotatingFileHandler(os.path.join(log_dir, 'certledger.log'), maxBytes=10240, backupCount=10)
        file_handler.setFormatter(logging.Formatter('%(asctime)s %(levelname)s: %(message)s [in %(pathname)s:%(lineno)d]'))
        file_handler.setLevel(logging.INFO)
        package_logger.addHandler(file_handler)
        package_logger.setLevel(logging.INFO)
        app.logger.info('CertLedger Application Startup')

    @app.errorhandler(CertLedgerError)
    def handle_certledger_error(e):
        if e.status_code >= 500:
            app.logger.error(f"{type(e).__name__}: {e.message}")
        return _error_response(e)

    @app.errorhandler(NotFound)
    def handle_not_found(e):
        return jsonify(error="Not Found", message="The requested resource was not found."), 404

    @app.errorhandler(HTTPException)
    def handle_http_error(e):
        return jsonify(error=e.name, message=e.description), e.code

    @app.errorhandler(Exception)
    def handle_generic_error(e):
        app.logger.exception(f"An unhandled exception occurred: {e}")
        return jsonify(error="Internal Server Error", message="An unexpected error occurred."), 500

    app.cli.add_command(init_db_command)
    app.cli.add_command(register_institution_command)

    @app.route("/")
    def index():
        return "CertLedger - API Service is Running"

    @app.route("/health")
    def health():
        return jsonify(status="ok", blockchain=app.config['LEDGER_NETWORK'], timestamp=iso_timestamp())

    return app
