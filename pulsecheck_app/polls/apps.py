from django.apps import AppConfig


class PollsConfig(AppConfig):
    name = "pulsecheck_app.polls"
    label = "polls"
