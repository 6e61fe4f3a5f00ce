from django.apps import AppConfig


class CoreConfig(AppConfig):
    name = "pulsecheck_app.core"
    label = "core"
    verbose_name = "PulseCheck core"

    def ready(self):
        from django.conf import settings

        from . import signals  # noqa: F401
        from .connectivity import ConnectivityMonitor

        # One connectivity view per process, shared by every service handle
        self.connectivity = ConnectivityMonitor(
            probe_url=settings.PULSECHECK_CONNECTIVITY_PROBE_URL,
            interval=settings.PULSECHECK_CONNECTIVITY_PROBE_INTERVAL,
            timeout=settings.PULSECHECK_CONNECTIVITY_PROBE_TIMEOUT,
        )
