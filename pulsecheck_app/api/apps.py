from django.apps import AppConfig


class ApiConfig(AppConfig):
    name = "pulsecheck_app.api"
    label = "api"
