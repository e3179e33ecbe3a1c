"""
Gunicorn configuration for the HabitFlow API.

    gunicorn -c gunicorn.conf.py habitflow.main:app

Env vars that override defaults:
  PORT       - TCP port to bind (default: 8000)
  WORKERS    - number of worker processes (default: 2)
  LOG_LEVEL  - gunicorn log level (default: info)
"""
import os

bind = f"0.0.0.0:{os.environ.get('PORT', '8000')}"

# Insight generation is CPU-bound and per-request; scale with processes.
workers = int(os.environ.get("WORKERS", "2"))

worker_class = "uvicorn.workers.UvicornWorker"

keepalive = 5

# Insight feeds over long histories can take a while on small instances.
timeout = 60

# stdout only; the container runtime collects it.
loglevel = os.environ.get("LOG_LEVEL", "info").lower()
accesslog = "-"
errorlog = "-"
access_log_format = '%(h)s "%(r)s" %(s)s %(b)sB %(D)sµs'

graceful_timeout = 30
