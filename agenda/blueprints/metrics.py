"""
Prometheus metrics blueprint.

Exposes /metrics with HTTP request metrics plus counters for the booking and
billing events. Restrict it to the monitoring network.
"""
import os
import time

from flask import Blueprint, Response, request, g
from prometheus_client import Counter, Histogram, Gauge, generate_latest, CollectorRegistry, CONTENT_TYPE_LATEST
from prometheus_client import multiprocess, REGISTRY

from agenda.services.events import appointment_requested, appointment_completion_requested

metrics_bp = Blueprint('metrics', __name__)

# Gunicorn workers share metrics through PROMETHEUS_MULTIPROC_DIR
MULTIPROCESS_MODE = os.environ.get('PROMETHEUS_MULTIPROC_DIR') is not None

if MULTIPROCESS_MODE:
    registry = CollectorRegistry()
    multiprocess.MultiProcessCollector(registry)
else:
    registry = REGISTRY

http_requests_total = Counter(
    'agenda_http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'http_status'],
    registry=registry if not MULTIPROCESS_MODE else None
)

http_request_duration_seconds = Histogram(
    'agenda_http_request_duration_seconds',
    'HTTP request latency in seconds',
    ['method', 'endpoint'],
    registry=registry if not MULTIPROCESS_MODE else None,
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0)
)

http_requests_in_flight = Gauge(
    'agenda_http_requests_in_flight',
    'Number of HTTP requests currently being processed',
    registry=registry if not MULTIPROCESS_MODE else None
)

events_published_total = Counter(
    'agenda_events_published_total',
    'Booking and billing events published',
    ['event_type'],
    registry=registry if not MULTIPROCESS_MODE else None
)


def _count_event(sender, **extra):
    events_published_total.labels(event_type=sender).inc()


def setup_metrics_instrumentation(app):
    """Register request hooks and event counters; call once from the app factory."""
    appointment_requested.connect(_count_event)
    appointment_completion_requested.connect(_count_event)

    @app.before_request
    def before_request_metrics():
        g._prometheus_metrics_start_time = time.time()
        http_requests_in_flight.inc()

    @app.after_request
    def after_request_metrics(response):
        start = g.pop('_prometheus_metrics_start_time', None)
        if start is None:
            return response

        endpoint = request.endpoint or 'unknown'
        http_request_duration_seconds.labels(
            method=request.method,
            endpoint=endpoint
        ).observe(time.time() - start)
        http_requests_total.labels(
            method=request.method,
            endpoint=endpoint,
            http_status=response.status_code
        ).inc()
        http_requests_in_flight.dec()
        return response


@metrics_bp.route('/metrics')
def metrics():
    """Prometheus text exposition (unauthenticated; keep it off the public network)."""
    return Response(generate_latest(registry), mimetype=CONTENT_TYPE_LATEST)
