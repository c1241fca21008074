import os
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent

SECRET_KEY = os.getenv("SECRET_KEY", "django-insecure-key")
DEBUG = os.getenv("DEBUG", "True") == "True"

ALLOWED_HOSTS = ["*"]

INSTALLED_APPS = [
    "django.contrib.contenttypes",
    "django.contrib.auth",
    "core",
]

# Results live in the in-memory clustering cache; persistence is left to
# the caller
DATABASES = {}

LANGUAGE_CODE = "en-us"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"


LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "[{levelname}] {asctime} {name}: {message}",
            "style": "{",
        },
        "simple": {
            "format": "{levelname} {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO" if DEBUG else "WARNING",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "core": {
            "handlers": ["console"],
            "level": os.getenv("CLUSTERING_LOG_LEVEL", "INFO"),
            "propagate": False,
        },
    },
}

# Cache configuration for task locking
CACHES = {
    "default": {
        "BACKEND": "django.core.cache.backends.locmem.LocMemCache",
        "LOCATION": "unique-snowflake",
    }
}

# Clustering engine (defaults in core/clustering/conf.py)
CLUSTERING = {
    "MIN_USERS": int(os.getenv("CLUSTERING_MIN_USERS", "20")),
    "MIN_STATEMENTS": int(os.getenv("CLUSTERING_MIN_STATEMENTS", "6")),
    "MIN_VARIANCE_EXPLAINED": float(os.getenv("CLUSTERING_MIN_VARIANCE_EXPLAINED", "0.4")),
    "MIN_SILHOUETTE_SCORE": float(os.getenv("CLUSTERING_MIN_SILHOUETTE_SCORE", "0.25")),
    "CACHE_MAX_SIZE": int(os.getenv("CLUSTERING_CACHE_MAX_SIZE", "100")),
    "CACHE_TTL_SECONDS": int(os.getenv("CLUSTERING_CACHE_TTL_SECONDS", "300")),
    "CACHE_SWEEP_INTERVAL_SECONDS": int(os.getenv("CLUSTERING_CACHE_SWEEP_INTERVAL_SECONDS", "60")),
    "RECOMPUTE_TIMEOUT_SECONDS": int(os.getenv("CLUSTERING_RECOMPUTE_TIMEOUT_SECONDS", "30")),
    "RANDOM_STATE": int(os.getenv("CLUSTERING_RANDOM_STATE", "42")),
}

# Celery Configuration
# The filesystem broker keeps local runs free of services; set
# USE_REDIS_BROKER=true to fan recomputes out to a worker pool
USE_REDIS_BROKER = os.getenv("USE_REDIS_BROKER", "False").lower() == "true"
BROKER_DATA_DIR = Path(os.getenv("BROKER_DATA_DIR", BASE_DIR / ".data" / "broker"))

if USE_REDIS_BROKER:
    CELERY_BROKER_URL = os.getenv("REDIS_URL", "redis://redis:6379/0")
    CELERY_RESULT_BACKEND = CELERY_BROKER_URL
else:
    CELERY_BROKER_URL = "filesystem://"
    CELERY_BROKER_TRANSPORT_OPTIONS = {
        "data_folder_in": str(BROKER_DATA_DIR / "out"),
        "data_folder_out": str(BROKER_DATA_DIR / "out"),
        "data_folder_processed": str(BROKER_DATA_DIR / "processed"),
    }

# Clustering results are published to the engine cache, not the result
# backend
CELERY_RESULT_PERSISTENT = False
CELERY_ACCEPT_CONTENT = ["json"]
CELERY_TASK_SERIALIZER = "json"
CELERY_RESULT_SERIALIZER = "json"
CELERY_TIMEZONE = TIME_ZONE
CELERY_BEAT_SCHEDULE = {
    "sweep-clustering-cache": {
        "task": "core.tasks.sweep_clustering_cache",
        "schedule": CLUSTERING["CACHE_SWEEP_INTERVAL_SECONDS"],
    },
}
