import os
from celery import Celery

os.environ.setdefault('DJANGO_SETTINGS_MODULE', 'mediaforge.settings')
app = Celery('mediaforge')
app.config_from_object('django.conf:settings', namespace='CELERY')
app.conf.task_routes = {'generation.tasks.*': {'queue': 'generation'}}
app.autodiscover_tasks()
