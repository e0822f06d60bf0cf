"""
Observability for FenceSync: loguru logging, Prometheus metrics and HTTP endpoints.
"""
