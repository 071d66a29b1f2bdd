"""
Gunicorn Configuration for the STX WhatsApp Bot
Uvicorn workers serving webhook_server:app
"""
import os

# Server socket
bind = f"0.0.0.0:{os.getenv('PORT', '5000')}"
backlog = 2048

# Each worker starts its own ledger sync scheduler; keep one unless
# LEDGER_SYNC_ENABLED is switched off on the extra workers
workers = int(os.getenv("WEB_CONCURRENCY", "1"))
worker_class = "uvicorn.workers.UvicornWorker"
worker_connections = 1000
max_requests = 10000
max_requests_jitter = 1000
timeout = 60  # ledger broadcasts happen inside the webhook request
keepalive = 30

# Logging
accesslog = "-"
errorlog = "-"
loglevel = os.getenv("LOG_LEVEL", "info").lower()

proc_name = "stx_whatsapp_bot"
daemon = False

# Each worker builds its own service container and event loop
preload_app = False


def when_ready(server):
    print(f"✅ Gunicorn ready with {workers} uvicorn workers on {bind}")


def post_fork(server, worker):
    print(f"🔧 Worker {worker.pid} started")


def worker_exit(server, worker):
    print(f"👋 Worker {worker.pid} exited")
