"""Flask application factory."""
import os
import traceback

from flask import Flask, request, jsonify
from flask_wtf.csrf import CSRFProtect, CSRFError, generate_csrf
from werkzeug.exceptions import HTTPException

from agenda.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # JSON clients send the token in the X-CSRFToken header
    CSRFProtect(app)

    @app.errorhandler(CSRFError)
    def handle_csrf_error(e):
        app.logger.warning(f"CSRF Error: {e.description}")
        return jsonify({'status': 'error', 'message': 'Session expired. Reload and try again.'}), 400

    # Sentry error tracking in production
    if os.getenv('SENTRY_DSN') and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=os.getenv('SENTRY_DSN'),
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            profiles_sample_rate=0.1,
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Redis cache for the catalog lists
    from agenda.services.cache_service import init_cache
    init_cache(app)

    # Prometheus instrumentation
    from agenda.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # HTTPS behind Nginx
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(
            app.wsgi_app,
            x_for=1,
            x_proto=1,
            x_host=1,
            x_port=1,
            x_prefix=0
        )

    init_db(app)

    # Load user and company context before each request
    from agenda.middleware import load_user_and_company

    @app.before_request
    def before_request_handler():
        load_user_and_company()

    # Error handlers
    from agenda.exceptions import AgendaError, FetchError

    @app.errorhandler(AgendaError)
    def handle_agenda_error(error):
        """Render application exceptions as JSON."""
        if error.status_code >= 500:
            app.logger.error(f"AgendaError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"AgendaError [{error.status_code}]: {error.message}")

        body = error.to_dict()
        if isinstance(error, FetchError) and not body.get('retry_url'):
            body['retry_url'] = request.full_path.rstrip('?')
        return jsonify(body), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'message': error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    @app.route('/api/csrf-token')
    def csrf_token():
        return jsonify({'status': 'success', 'csrfToken': generate_csrf()})

    # Register blueprints
    from agenda.blueprints.catalog import catalog_bp
    from agenda.blueprints.appointments import appointments_bp
    from agenda.blueprints.sales import sales_bp
    from agenda.blueprints.metrics import metrics_bp

    app.register_blueprint(catalog_bp)
    app.register_blueprint(appointments_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(metrics_bp)

    # Persistence receivers for the wizard and billing dialog events
    from agenda.services.appointment_service import register_event_handlers
    register_event_handlers()

    from agenda.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
