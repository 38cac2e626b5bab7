"""Flask application factory."""
import logging
import os
import traceback

from flask import Flask, jsonify
from werkzeug.exceptions import HTTPException

from app.database import init_db


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    app.logger.setLevel(level)
    logging.getLogger('app').setLevel(level)

    # Sentry error tracking, production only
    sentry_dsn = app.config.get('SENTRY_DSN')
    if sentry_dsn and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,
            environment=app.config.get('ENV'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    from app.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: HTTPS behind a reverse proxy
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

    # Error Handlers
    from app.exceptions import PosError

    @app.errorhandler(PosError)
    def handle_pos_error(error):
        """Render application errors as the JSON error envelope."""
        if error.status_code >= 500:
            app.logger.error(f"{type(error).__name__} [{error.status_code}]: {error.message}")
        else:
            app.logger.info(f"{type(error).__name__} [{error.status_code}]: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({
            'code': error.code,
            'status': 'error',
            'kind': 'http_error',
            'message': error.name
        }), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({
            'code': 500,
            'status': 'error',
            'kind': 'error',
            'message': 'Internal Server Error'
        }), 500

    # Register blueprints
    from app.blueprints.coupons import coupons_bp
    from app.blueprints.sales import sales_bp
    from app.blueprints.metrics import metrics_bp

    app.register_blueprint(coupons_bp)
    app.register_blueprint(sales_bp)
    app.register_blueprint(metrics_bp)

    from app.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
