# /eirybot/utils/metrics.py

from prometheus_client import Counter, Histogram

# This file defines all Prometheus metrics used for application monitoring.
# Centralizing them here makes them easy to find and manage.

# Business Logic Metrics
sessions_created_counter = Counter('demo_sessions_created_total', 'Demo sessions created', ['specialty', 'goal'])
events_counter = Counter('demo_events_total', 'Conversation events recorded', ['type', 'status'])
transitions_counter = Counter('demo_transitions_total', 'Flow runner transitions applied', ['status'])
handoffs_counter = Counter('demo_handoffs_total', 'Handoff summaries generated', ['status'])
database_operations_counter = Counter('database_operations_total', 'Database operations', ['operation', 'status'])

# Performance Metrics
response_time_histogram = Histogram('response_time_seconds', 'Response time in seconds', ['endpoint'])
