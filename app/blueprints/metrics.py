"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics and coupon redemption outcomes.
The endpoint is unauthenticated; restrict it to the monitoring network.
"""
import os
import time

from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share metrics through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
    _metric_registry = None
else:
    registry = REGISTRY
    _metric_registry = REGISTRY

http_requests_total = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=_metric_registry
)

http_request_duration_seconds = Histogram(
    'http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=_metric_registry,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0)
)

http_requests_in_flight = Gauge(
    'http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=_metric_registry
)

# outcome: redeemed, not_active, not_yet_valid, expired, exhausted_uses
coupon_redemptions_total = Counter(
    'coupon_redemptions_total',
    'Coupon redemption attempts by outcome',
    ['outcome'],
    registry=_metric_registry
)


def setup_metrics_instrumentation(app):
    """Register before/after request hooks that feed the HTTP metrics."""

    @app.before_request
    def before_request_metrics():
        g._metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        if not hasattr(g, '_metrics_start_time'):
            return response

        endpoint = request.endpoint or 'unknown'
        duration = time.time() - g._metrics_start_time
        http_request_duration_seconds.labels(method=request.method, endpoint=endpoint).observe(duration)
        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            http_status=response.status_code
        ).inc()
        http_requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus text exposition of every registered metric."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
