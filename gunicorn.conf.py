"""Gunicorn configuration for the chemical stock API."""
import os

# Network binding configuration. Defaults are suitable for containerized deployments.
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:5000")

# Each worker is stateless; stock updates serialize in the database.
workers = int(os.getenv("GUNICORN_WORKERS", "2"))

# Log to stdout/stderr by default so container orchestrators can capture logs.
accesslog = os.getenv("GUNICORN_ACCESS_LOGFILE", "-")
errorlog = os.getenv("GUNICORN_ERROR_LOGFILE", "-")
loglevel = os.getenv("LOG_LEVEL", "info").lower()

forwarded_allow_ips = os.getenv("GUNICORN_FORWARDED_ALLOW_IPS", "*")
