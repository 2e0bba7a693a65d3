# backend/gunicorn_conf.py

# Gunicorn config file
# Run with: gunicorn -c gunicorn_conf.py eirybot.main:app

import os

# Basic configuration
bind = f"0.0.0.0:{os.getenv('PORT', '8000')}"
workers = int(os.getenv("WORKERS", "2"))
worker_class = "uvicorn.workers.UvicornWorker"

# Settings for running behind a reverse proxy like Nginx
forwarded_allow_ips = "*"

# --- Logging ---
# structlog renders application logs; gunicorn only writes its own to stdout/stderr
accesslog = "-"
errorlog = "-"
loglevel = "info"
