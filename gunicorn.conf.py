"""
Gunicorn configuration for TrendPulse production deployment.

Usage:
    gunicorn trendpulse.main:app -c gunicorn.conf.py
"""

import multiprocessing
import os

bind = os.getenv("BIND", "0.0.0.0:8000")

# Each worker owns its own section cache; keep the count modest
workers = int(os.getenv("WEB_CONCURRENCY", str(min(multiprocessing.cpu_count() + 1, 5))))

# Use Uvicorn's ASGI worker for FastAPI
worker_class = "uvicorn.workers.UvicornWorker"

# Recalculate/reconcile over a large catalog can run long
timeout = 300
graceful_timeout = 30
keepalive = 5

accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info")
