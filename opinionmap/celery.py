import os
from pathlib import Path

from celery import Celery

os.environ.setdefault("DJANGO_SETTINGS_MODULE", "opinionmap.settings")

app = Celery("opinionmap")
app.config_from_object("django.conf:settings", namespace="CELERY")
app.autodiscover_tasks()


def ensure_broker_folders(transport_options):
    """Create the filesystem broker's folders; returns the ones it touched."""
    folders = sorted(
        {
            Path(path)
            for key, path in (transport_options or {}).items()
            if key.startswith("data_folder_")
        }
    )
    for folder in folders:
        folder.mkdir(parents=True, exist_ok=True)
    return folders


@app.on_after_configure.connect
def prepare_filesystem_broker(sender, **kwargs):
    if sender.conf.broker_url == "filesystem://":
        ensure_broker_folders(sender.conf.broker_transport_options)
