"""Prometheus metrics shared by the API and the engine"""

from prometheus_client import Counter, Histogram

REQUEST_COUNT = Counter(
    'http_requests_total',
    'Total HTTP requests',
    ['method', 'endpoint', 'status_code']
)
REQUEST_DURATION = Histogram(
    'http_request_duration_seconds',
    'HTTP request duration',
    ['method', 'endpoint']
)
SERVICEABILITY_DECISIONS = Counter(
    'serviceability_decisions_total',
    'Serviceability decisions by outcome',
    ['service_type', 'outcome']
)
CAPACITY_RACES_LOST = Counter(
    'serviceability_capacity_races_lost_total',
    'Reservations that lost the last daily slot to a concurrent request',
    ['service_type']
)
MALFORMED_RECORDS = Counter(
    'serviceability_malformed_records_total',
    'Catalog records skipped because they failed validation',
    ['kind']
)
