from flask import Flask
from mpesa_gateway.extensions import cors, redis_client
from mpesa_gateway.config import config


def create_app(config_name='development'):
    """Application factory pattern"""
    app = Flask(__name__)

    # Load configuration
    app.config.from_object(config[config_name])

    # Initialize extensions
    redis_client.init_app(app)
    cors.init_app(app)

    # Logging
    from mpesa_gateway.utils.logger import configure_app_logging, RequestLogger
    configure_app_logging(app)
    RequestLogger(app)

    # Register blueprints
    from mpesa_gateway.api import register_blueprints
    register_blueprints(app)

    # Error handlers
    register_error_handlers(app)

    return app


def register_error_handlers(app):
    """Register error handlers"""
    from flask import jsonify
    from mpesa_gateway.errors import AppError

    @app.errorhandler(AppError)
    def app_error(error):
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(400)
    def bad_request(error):
        return jsonify({'success': False, 'error': 'Bad request', 'message': str(error)}), 400

    @app.errorhandler(404)
    def not_found(error):
        return jsonify({'success': False, 'error': 'Not found', 'message': str(error)}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'success': False, 'error': 'Method not allowed', 'message': str(error)}), 405

    @app.errorhandler(500)
    def internal_error(error):
        return jsonify({'success': False, 'error': 'Internal server error', 'message': str(error)}), 500
