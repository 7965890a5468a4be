from celery import Celery

# Worker entry point: celery -A app.celery worker
celery = Celery("time_entries")

# Broker, serialization and retry policy live in app.config.celeryconfig
celery.config_from_object("app.config.celeryconfig")
