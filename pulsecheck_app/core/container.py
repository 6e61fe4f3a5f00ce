"""Builds service handles with their collaborators.

Views ask for a ``Services`` bundle per request instead of importing
module-level clients. The only process-wide object is the connectivity
monitor owned by the core app config.
"""

from __future__ import annotations

from functools import cached_property

from django.apps import apps

from .auth import AuthGateway
from .notifications import ResponseNotifier
from .settings_store import SettingsStore
from .storage import BannerStorage
from .store import DocumentStore


class Services:
    def __init__(self, store: DocumentStore | None = None, connectivity=None):
        self.store = store or DocumentStore()
        self.connectivity = connectivity or apps.get_app_config("core").connectivity

    @cached_property
    def settings(self) -> SettingsStore:
        return SettingsStore(self.store, self.connectivity, BannerStorage())

    @cached_property
    def notifier(self) -> ResponseNotifier:
        return ResponseNotifier(self.settings)

    @cached_property
    def auth(self) -> AuthGateway:
        return AuthGateway()

    @cached_property
    def polls(self):
        from pulsecheck_app.polls.services import PollService

        return PollService(self.store, self.connectivity, self.settings, self.notifier)

    def forms(self, kind):
        from pulsecheck_app.surveys.services.form_service import FormService

        return FormService(kind, self.store, self.connectivity, self.settings, self.notifier)

    def collector(self, kind):
        from pulsecheck_app.surveys.collector import ResponseCollector

        return ResponseCollector(
            kind, self.store, self.connectivity, self.settings, self.notifier
        )

    @cached_property
    def nominations(self):
        from pulsecheck_app.nominations.roster import load_roster
        from pulsecheck_app.nominations.services import NominationService

        return NominationService(
            self.store, self.connectivity, self.settings, roster=load_roster()
        )
