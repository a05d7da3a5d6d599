"""Flask application factory."""
import logging

from flask import Flask, jsonify, request
from werkzeug.exceptions import HTTPException

from tradeflow.database import init_db


def _configure_logging(app):
    level = getattr(logging, str(app.config.get('LOG_LEVEL', 'INFO')).upper(), logging.INFO)
    logging.basicConfig(
        level=level,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    app.logger.setLevel(level)


def create_app(config_object='config.Config', test_config=None):
    """Create and configure the Flask application."""
    app = Flask(__name__)
    app.config.from_object(config_object)
    if test_config:
        app.config.update(test_config)

    _configure_logging(app)

    # Sentry for error tracking in production
    if app.config.get('SENTRY_DSN') and app.config.get('ENV') == 'production':
        import sentry_sdk
        from sentry_sdk.integrations.flask import FlaskIntegration

        sentry_sdk.init(
            dsn=app.config['SENTRY_DSN'],
            integrations=[FlaskIntegration()],
            traces_sample_rate=0.1,  # 10% of transactions for performance monitoring
            environment=app.config.get('ENV', 'production'),
        )

    # Redis cache
    from tradeflow.services.cache_service import init_cache
    init_cache(app)

    # Prometheus metrics instrumentation
    from tradeflow.blueprints.metrics import setup_metrics_instrumentation
    setup_metrics_instrumentation(app)

    # Production: Enable ProxyFix for HTTPS behind Nginx reverse proxy
    if app.config.get('ENV') == 'production':
        from werkzeug.middleware.proxy_fix import ProxyFix
        app.wsgi_app = ProxyFix(app.wsgi_app, x_for=1, x_proto=1, x_host=1, x_port=1, x_prefix=0)

    # Initialize database
    init_db(app)

    # Load identity (company, user, role) before each request
    from tradeflow.middleware import load_identity

    @app.before_request
    def before_request_handler():
        load_identity()

    # Error Handlers
    from tradeflow.exceptions import TradeflowError

    @app.errorhandler(TradeflowError)
    def handle_tradeflow_error(error):
        """Handle custom application exceptions."""
        log = app.logger.error if error.status_code >= 500 else app.logger.warning
        log(f"TradeflowError [{error.status_code}] {request.method} {request.path}: {error.message}")
        return jsonify(error.to_dict()), error.status_code

    @app.errorhandler(404)
    def not_found_error(error):
        return jsonify({'status': 'error', 'message': 'Not Found'}), 404

    @app.errorhandler(405)
    def method_not_allowed(error):
        return jsonify({'status': 'error', 'message': 'Method Not Allowed'}), 405

    @app.errorhandler(500)
    @app.errorhandler(Exception)
    def internal_error(error):
        if isinstance(error, HTTPException) and error.code < 500:
            return jsonify({'status': 'error', 'message': error.description}), error.code
        app.logger.exception(f"Unhandled Exception: {error}")
        return jsonify({'status': 'error', 'message': 'Internal Server Error'}), 500

    # Register blueprints
    from tradeflow.blueprints.main import main_bp
    from tradeflow.blueprints.invoices import invoices_bp
    from tradeflow.blueprints.orders import orders_bp
    from tradeflow.blueprints.payments import payments_bp
    from tradeflow.blueprints.purchase_orders import purchase_orders_bp
    from tradeflow.blueprints.shipments import shipments_bp
    from tradeflow.blueprints.accounting import accounting_bp
    from tradeflow.blueprints.dashboard import dashboard_bp
    from tradeflow.blueprints.sequences import sequences_bp
    from tradeflow.blueprints.metrics import metrics_bp

    app.register_blueprint(main_bp)
    app.register_blueprint(invoices_bp)
    app.register_blueprint(orders_bp)
    app.register_blueprint(payments_bp)
    app.register_blueprint(purchase_orders_bp)
    app.register_blueprint(shipments_bp)
    app.register_blueprint(accounting_bp)
    app.register_blueprint(dashboard_bp)
    app.register_blueprint(sequences_bp)
    app.register_blueprint(metrics_bp)

    # Register CLI commands
    from tradeflow.cli_commands import init_cli_commands
    init_cli_commands(app)

    return app
