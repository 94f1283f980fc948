"""
Gunicorn configuration for the ledger service.

    gunicorn -c gunicorn.conf.py run:app
"""
import os

bind = f"0.0.0.0:{os.getenv('PORT', '8080')}"

# Balance updates are single conditional UPDATEs, so workers need no coordination
workers = int(os.getenv('GUNICORN_WORKERS', '2'))
worker_class = 'sync'
timeout = 60
keepalive = 5

# Logging
accesslog = '-'  # stdout
errorlog = '-'   # stderr
loglevel = os.getenv('LOG_LEVEL', 'info')
capture_output = True

proc_name = 'loyalty-ledger'
preload_app = True
graceful_timeout = 30


def on_starting(server):
    print("[Gunicorn] Starting loyalty ledger...")


def on_exit(server):
    print("[Gunicorn] Loyalty ledger shutting down...")
