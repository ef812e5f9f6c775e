"""
Gunicorn configuration for the HabitHive API.

Env vars that override defaults:
  PORT    : TCP port to bind
  WORKERS : number of worker processes (default: 1)
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Snapshot fan-out to /habits/stream subscribers is in-process, so every
# client of one user must land on the same worker. Scale out only behind
# sticky sessions.
workers = int(os.environ.get("WORKERS", "1"))

# Each worker runs Uvicorn's ASGI event loop inside Gunicorn's process manager.
worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# Kill a worker that hasn't responded in 120 s.
timeout = 120

# stdout only; app logs share the stream (app/core/logging_setup.py).
loglevel = "info"
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
