from django.apps import AppConfig


class DispatchAppConfig(AppConfig):
    default_auto_field = 'django.db.models.BigAutoField'
    name = 'dispatch'
    verbose_name = 'Booking dispatch'
