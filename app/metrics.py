from flask import request
from prometheus_client import Histogram, Counter
from sqlalchemy import event
import time

from models import db

DB_QUERY_DURATION = Histogram(
    "db_query_duration_seconds",
    "Database query duration in seconds",
    buckets=(0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1, 2, 5),
)

ERROR_COUNTER = Counter(
    "flask_error_total",
    "Count of HTTP responses with status >= 400",
    ["endpoint", "method", "code"],
)

ORDERS_CREATED = Counter(
    "checkout_orders_created_total",
    "Orders committed from a cart session",
    ["channel"],
)

CHECKOUT_REJECTED = Counter(
    "checkout_rejected_total",
    "Checkouts rejected before commit",
    ["channel", "reason"],
)


def _time_queries(engine):
    @event.listens_for(engine, "before_cursor_execute")
    def _start(conn, cursor, statement, parameters, context, executemany):
        if context is not None:
            context._query_started = time.perf_counter()

    @event.listens_for(engine, "after_cursor_execute")
    def _stop(conn, cursor, statement, parameters, context, executemany):
        started = getattr(context, "_query_started", None)
        if started is not None:
            DB_QUERY_DURATION.observe(time.perf_counter() - started)


def init_app(app):
    """Time database queries and count error responses."""
    with app.app_context():
        _time_queries(db.engine)

    @app.after_request
    def _count_errors(resp):
        if resp.status_code >= 400:
            ERROR_COUNTER.labels(request.endpoint or "unknown", request.method, resp.status_code).inc()
        return resp
