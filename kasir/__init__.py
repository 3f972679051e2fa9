"""Flask application factory."""
from flask import Flask, request, jsonify
from werkzeug.exceptions import HTTPException
from kasir.database import init_db
import os


def create_app(config_object='config.Config'):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize Sentry for error tracking in production
    sentry_dsn = app.config.get('SENTRY_DSN')
    if sentry_dsn and (app.config.get('ENV') == 'production' or os.getenv('FLASK_ENV') == 'production'):
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=sentry_dsn,
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=os.getenv('FLASK_ENV', 'production'),
            release=os.getenv('GIT_COMMIT', 'unknown')
        )

    # Production: Enable ProxyFix for HTTPS behind a reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Order engine: gateway client and activity log sink are shared by all requests
    from kasir.services.midtrans_client import MidtransClient
    from kasir.services.activity_log_service import ActivityLogService
    from kasir.services.order_service import OrderService

    app.extensions['order_service'] = OrderService(
        gateway=MidtransClient.from_config(app.config),
        activity_logger=ActivityLogService(),
        default_limit=app.config.get('ORDER_LIST_DEFAULT_LIMIT', 10),
        max_limit=app.config.get('ORDER_LIST_MAX_LIMIT', 100),
    )

    # Actor context for each request
    from kasir.middleware import load_actor

    @app.before_request
    def before_request_handler():
        load_actor()

    # Error Handlers
    from kasir.exceptions import KasirError

    @app.errorhandler(KasirError)
    def handle_kasir_error(error):
        """Handle custom application exceptions."""
        if error.status_code >= 500:
            app.logger.error(f"KasirError [{error.status_code}]: {error.message}")
        else:
            app.logger.warning(f"KasirError [{error.status_code}] {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(HTTPException)
    def handle_http_error(error):
        return jsonify({'status': 'error', 'message': error.description or error.name}), error.code

    @app.errorhandler(Exception)
    def internal_error(error):
        import traceback
        app.logger.error(f"Unhandled Exception: {error}")
        app.logger.error(f"Traceback: {traceback.format_exc()}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from kasir.blueprints.orders import orders_bp
    from kasir.blueprints.products import products_bp
    from kasir.blueprints.webhooks import webhooks_bp

    app.register_blueprint(orders_bp)
    app.register_blueprint(products_bp)
    app.register_blueprint(webhooks_bp)

    # Register CLI commands
    from kasir.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
