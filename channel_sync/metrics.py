"""
Prometheus metrics for channel sync
"""

from prometheus_client import Counter, Histogram

# Sync attempt metrics
sync_attempts_total = Counter(
    'channel_sync_attempts_total',
    'Sync attempts by final status',
    ['channel', 'sync_type', 'status']
)

sync_duration_seconds = Histogram(
    'channel_sync_duration_seconds',
    'Sync attempt duration',
    ['channel', 'sync_type']
)

sync_records_total = Counter(
    'channel_sync_records_total',
    'Records processed by sync attempts',
    ['channel', 'sync_type']
)

# Client metrics
client_requests_total = Counter(
    'channel_client_requests_total',
    'Requests sent to channel APIs',
    ['channel', 'endpoint', 'outcome']
)

# Import metrics
reservations_imported_total = Counter(
    'channel_reservations_imported_total',
    'Pulled reservations by import result',
    ['channel', 'result']
)
