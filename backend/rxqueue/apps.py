from django.apps import AppConfig


class RxQueueConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'rxqueue'
    verbose_name = 'Prescription Queue'
