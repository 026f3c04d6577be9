"""Flask application factory."""
from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect
from werkzeug.exceptions import HTTPException
from ealbaran.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # CSRF protection (SPA sends X-CSRFToken)
    csrf = CSRFProtect(app)

    from flask_wtf.csrf import CSRFError

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        message = 'La sesión ha expirado. Recarga la página.'
        return jsonify({'status': 'error', 'error': message, 'message': message}), 400

    # Sentry for error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Flask-Mail for notifications
    from ealbaran.services.email_service import init_mail
    init_mail(app)

    # Redis cache
    from ealbaran.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from ealbaran.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Multi-tenant: load user and tenant context before each request
    from ealbaran.middleware import load_user_and_tenant

    @app.before_request
    def before_request_handler():
        load_user_and_tenant()

    # Error Handlers
    from ealbaran.exceptions import AlbaranError

    @app.errorhandler(AlbaranError)
    def handle_albaran_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"AlbaranError [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"AlbaranError [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        message = error.description or error.name
        return jsonify({'status': 'error', 'error': message, 'message': message}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.exception(f"Unhandled Exception: {error}")
        message = 'Error interno del servidor'
        return jsonify({'status': 'error', 'error': message, 'message': message}), 500

    # Register blueprints
    from ealbaran.blueprints.auth import auth_bp
    from ealbaran.blueprints.dashboard import dashboard_bp
    from ealbaran.blueprints.delivery_notes import delivery_notes_bp
    from ealbaran.blueprints.invoices import invoices_bp
    from ealbaran.blueprints.quotes import quotes_bp
    from ealbaran.blueprints.metrics import metrics_bp

    app.register_blueprint(auth_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(delivery_notes_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(quotes_bp)

    # Scraped by Prometheus, no session
    csrf.exempt(metrics_bp)
    app.register_blueprint(metrics_bp)

    from ealbaran.cli_commands import init_cli_commands
    init_cli_commands(app)

    app.logger.info(f"MAIL_SERVER={app.config.get('MAIL_SERVER')}")
    app.logger.info(f"SIGNATURE_CAPTURE_MODE={app.config.get('SIGNATURE_CAPTURE_MODE')}")

    return app
