from django.apps import AppConfig


class NominationsConfig(AppConfig):
    name = "pulsecheck_app.nominations"
    label = "nominations"
