from flask import Flask, request, g
from dotenv import load_dotenv
from app.config import get_config_class
from app.logging import configure_logging
from app.errors import errors_bp
from app.cli import register_cli
from app.api import register_api_v1
from app.services.whatsapp import init_twilio
from app.version import API_PREFIX
from app import metrics as app_metrics
from flask_cors import CORS
from flasgger import Swagger
from prometheus_client import CollectorRegistry
from prometheus_flask_exporter import PrometheusMetrics
from flask_migrate import Migrate
import extensions
import logging
import os
import uuid
from opentelemetry.trace.propagation.tracecontext import TraceContextTextMapPropagator
from app.telemetry import init_tracing
from models import db

EXPOSED_HEADERS = ("X-Request-ID", "X-Session-ID", "traceparent")

SWAGGER_CONFIG = {
    "headers": [],
    "specs": [
        {
            "endpoint": "apispec",
            "route": "/apispec.json",
            "rule_filter": lambda rule: rule.rule.startswith(f"{API_PREFIX}/"),
            "model_filter": lambda tag: True,
        }
    ],
    "swagger_ui": True,
    "specs_route": "/docs/",
}

SWAGGER_TEMPLATE = {
    "info": {"title": "BS Shop API", "version": API_PREFIX.rsplit("/", 1)[-1]},
    "tags": [
        {"name": "Cart", "description": "Session cart endpoints"},
        {"name": "Orders", "description": "Checkout and order history"},
        {"name": "Admin", "description": "Back-office order management"},
    ],
}


def _cors_origins(allowed):
    if not isinstance(allowed, str):
        return allowed or "*"
    allowed = allowed.strip()
    if allowed == "*":
        return "*"
    return [o.strip() for o in allowed.split(",") if o.strip()]


def _init_metrics(app):
    # a private registry keeps repeated test apps from colliding on the global one
    registry = CollectorRegistry() if app.config.get("TESTING") else None
    metrics = PrometheusMetrics(app, path="/metrics", registry=registry)
    if not app.config.get("TESTING") and not os.environ.get("METRICS_APP_INFO_SET"):
        metrics.info("app_info", "Application info", version="1.0.0")
        os.environ["METRICS_APP_INFO_SET"] = "1"
    app_metrics.init_app(app)


def _register_request_hooks(app):
    @app.before_request
    def _set_request_id():
        incoming = request.headers.get("X-Request-ID")
        g.request_id = (incoming or uuid.uuid4().hex)[:100]
        app.logger.info(f"request start {request.method} {request.path}")

    @app.after_request
    def _decorate_response(resp):
        rid = getattr(g, "request_id", None)
        if rid:
            resp.headers["X-Request-ID"] = rid

        carrier = {}
        TraceContextTextMapPropagator().inject(carrier)
        if carrier.get("traceparent"):
            resp.headers["traceparent"] = carrier["traceparent"]

        resp.headers.setdefault("X-Content-Type-Options", "nosniff")
        resp.headers.setdefault("X-Frame-Options", "DENY")
        resp.headers.setdefault("Referrer-Policy", "no-referrer")
        exposed = [h for h in resp.headers.get("Access-Control-Expose-Headers", "").split(",") if h.strip()]
        for name in EXPOSED_HEADERS:
            if name not in exposed:
                exposed.append(name)
        resp.headers["Access-Control-Expose-Headers"] = ",".join(exposed)
        return resp


def create_app(config_object=None):
    """Application factory."""
    load_dotenv()
    app = Flask(__name__)
    app.config.from_object(config_object if config_object is not None else get_config_class())

    configure_logging(app)
    register_cli(app)
    init_twilio(app)

    extensions.limiter.init_app(app)
    app.limiter = extensions.limiter
    Migrate(app, db, compare_type=True, render_as_batch=True)
    Swagger(app, config=SWAGGER_CONFIG, template=SWAGGER_TEMPLATE)
    CORS(
        app,
        origins=_cors_origins(app.config.get("CORS_ALLOWED_ORIGINS", "*")),
        supports_credentials=True,
        expose_headers=list(EXPOSED_HEADERS[:2]),
    )

    app.register_blueprint(errors_bp)
    if app.config.get("TESTING"):
        from app.test_support import test_support_bp
        app.register_blueprint(test_support_bp)
        app.register_blueprint(test_support_bp, url_prefix=f"{API_PREFIX}/test_support", name="test_support_bp_v1")
    register_api_v1(app)
    _register_request_hooks(app)

    db.init_app(app)
    _init_metrics(app)
    init_tracing(app)
    if app.config.get("DEBUG") or app.config.get("TESTING"):
        with app.app_context():
            db.create_all()
            logging.info("Tables created")

    @app.route("/health")
    def health():
        return {"status": "ok"}, 200

    return app
