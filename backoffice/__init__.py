"""Flask application factory."""
import logging
import os

from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException

from backoffice.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    log_level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(level=log_level, format='%(asctime)s %(levelname)s [%(name)s] %(message)s')
    app.logger.setLevel(log_level)
    logging.getLogger('backoffice').setLevel(log_level)

    # Sentry error tracking in production
    sentry_dsn = app.config.get('SENTRY_DSN')
    if sentry_dsn and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Prometheus metrics instrumentation
    from backoffice.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Caller identity for each request
    from backoffice.middleware import load_caller

    @app.before_request
    def before_request_handler():
        load_caller()

    # Error Handlers
    from backoffice.exceptions import BackofficeError

    @app.errorhandler(BackofficeError)
    def handle_backoffice_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"BackofficeError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"BackofficeError [{error.status_code}] on {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Ressource introuvable.'}), 404

    @app.errorhandler(405)
    def method_not_allowed_error(error):
        return jsonify({'status': 'error', 'message': 'Méthode non autorisée.'}), 405

    @app.errorhandler(HTTPException)
    def http_error(error):
        return jsonify({'status': 'error', 'message': error.description}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Erreur interne du serveur.'}), 500

    # Register blueprints
    from backoffice.blueprints.quotes import quotes_bp
    from backoffice.blueprints.invoices import invoices_bp
    from backoffice.blueprints.payments import payments_bp
    from backoffice.blueprints.metrics import metrics_bp

    app.register_blueprint(quotes_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from backoffice.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
