from django.apps import AppConfig


class SurveysConfig(AppConfig):
    name = "pulsecheck_app.surveys"
    label = "surveys"
