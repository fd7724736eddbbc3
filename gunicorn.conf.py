from __future__ import annotations

import os

chdir = os.path.join(os.path.dirname(os.path.abspath(__file__)), "zkballot_app")
pythonpath = chdir
wsgi_app = "config.wsgi:application"
bind = os.getenv("GUNICORN_BIND", "0.0.0.0:8000")
workers = int(os.getenv("GUNICORN_WORKERS", "2"))

# Vote admission waits on the external proof verifier.
timeout = int(os.getenv("GUNICORN_TIMEOUT", "60"))

accesslog = "-"
errorlog = "-"
capture_output = True
log_level = os.getenv("LOG_LEVEL", "info").upper()
loglevel = log_level.lower()
forwarded_allow_ips = "*"
access_log_format = '%({x-forwarded-for}i)s %(l)s %(u)s %(t)s "%(r)s" %(s)s %(b)s "%(f)s" "%(a)s"'

logconfig_dict = {
    "version": 1,
    "disable_existing_loggers": False,
    "filters": {
        "health_endpoint": {
            "()": "config.logging_filters.HealthEndpointFilter",
        },
    },
    "formatters": {
        "access": {
            "format": "%(message)s",
        },
        "error": {
            "format": "[{asctime}] {levelname} {name}: {message}",
            "style": "{",
        },
    },
    "handlers": {
        "stdout": {
            "class": "logging.StreamHandler",
            "formatter": "access",
        },
        "stderr": {
            "class": "logging.StreamHandler",
            "formatter": "error",
        },
    },
    "loggers": {
        "gunicorn.error": {
            "handlers": ["stderr"],
            "level": "INFO",
            "propagate": False,
        },
        "gunicorn.access": {
            "handlers": ["stdout"],
            "level": "INFO",
            "filters": ["health_endpoint"],
            "propagate": False,
        },
        "ballots": {
            "handlers": ["stderr"],
            "level": log_level,
            "propagate": False,
        },
    },
    "root": {
        "handlers": ["stderr"],
        "level": "WARNING",
    },
}
