# Gunicorn configuration file
import os

wsgi_app = "yield_optimizer_backend.wsgi:application"
bind = os.environ.get("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.environ.get("GUNICORN_WORKERS", "3"))
# Portfolio analysis fans out to every market source; keep above SOURCE_TIMEOUT_SECONDS
timeout = 120
keepalive = 65
worker_class = "sync"
