from django.urls import include, path
from rest_framework.routers import DefaultRouter

from . import views

router = DefaultRouter()
router.register(r"polls", views.PollViewSet, basename="poll")
router.register(r"feedback", views.FeedbackFormViewSet, basename="feedback")
router.register(r"questionnaires", views.QuestionnaireViewSet, basename="questionnaire")
router.register(r"nominations", views.NominationViewSet, basename="nomination")
router.register(r"auth", views.AuthViewSet, basename="auth")

settings_view = views.SettingsViewSet.as_view(
    {"get": "current", "put": "update_settings", "patch": "update_settings"}
)

urlpatterns = [
    path("health", views.healthcheck, name="healthcheck"),
    path("dashboard/", views.dashboard, name="dashboard"),
    path("settings/", settings_view, name="settings"),
    path(
        "settings/banner/",
        views.SettingsViewSet.as_view({"post": "banner"}),
        name="settings-banner",
    ),
    path(
        "settings/public/",
        views.SettingsViewSet.as_view({"get": "public"}),
        name="settings-public",
    ),
    path("", include(router.urls)),
]
