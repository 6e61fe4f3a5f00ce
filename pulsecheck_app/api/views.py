from dataclasses import asdict
from functools import cached_property
from typing import Any

from django.utils.decorators import method_decorator
from django_ratelimit.decorators import ratelimit
from rest_framework import permissions, serializers, status, viewsets
from rest_framework.decorators import action, api_view, permission_classes
from rest_framework.response import Response

from pulsecheck_app.core import errors
from pulsecheck_app.core.auth import is_verified_admin, read_verification_token
from pulsecheck_app.core.container import Services
from pulsecheck_app.core.qr_utils import ShareLink
from pulsecheck_app.core.settings_store import EXPORT_FORMATS
from pulsecheck_app.core.store import (
    FEEDBACK_FORMS,
    FEEDBACK_RESPONSES,
    NOMINATIONS,
    POLL_RESPONSES,
    POLLS,
    QUESTIONNAIRE_RESPONSES,
    QUESTIONNAIRES,
)
from pulsecheck_app.nominations.services import normalise_identity
from pulsecheck_app.polls.services import Poll, PollTally
from pulsecheck_app.surveys.builder import SchemaBuilder
from pulsecheck_app.surveys.collector import render
from pulsecheck_app.surveys.schema import (
    FEEDBACK,
    QUESTION_TYPES,
    QUESTIONNAIRE,
    FormSchema,
)
from pulsecheck_app.surveys.services import export_service
from pulsecheck_app.surveys.services.response_analytics import (
    compute_dashboard_summary,
)

# ``format`` is taken by DRF content negotiation
EXPORT_FORMAT_PARAM = "export_format"


# -----------------------------------------------------------------------------
# Permissions
# -----------------------------------------------------------------------------


class IsVerifiedAdmin(permissions.BasePermission):
    """Staff account with a verified email address."""

    message = "Administrator access requires a staff account with a verified email."

    def has_permission(self, request, view):
        return is_verified_admin(request.user)


class AllowedNetwork(permissions.BasePermission):
    """Applies ``security.allowed_ip_ranges`` to the public response endpoints."""

    message = "Responses are not accepted from your network."

    def has_permission(self, request, view):
        security = view.services.settings.read().security
        if not security.allows(request.META.get("REMOTE_ADDR", "")):
            # Returning False would become a 401 for anonymous respondents
            raise errors.PermissionDeniedError(self.message)
        return True


# -----------------------------------------------------------------------------
# Serializers
# -----------------------------------------------------------------------------


class PollSerializer(serializers.Serializer):
    title = serializers.CharField(allow_blank=True)
    question = serializers.CharField(allow_blank=True)
    description = serializers.CharField(allow_blank=True, required=False)
    options = serializers.ListField(child=serializers.CharField(allow_blank=True))
    location = serializers.CharField(allow_blank=True)
    end_date = serializers.CharField(allow_blank=True, allow_null=True, required=False)


class PollUpdateSerializer(PollSerializer):
    title = serializers.CharField(allow_blank=True, required=False)
    question = serializers.CharField(allow_blank=True, required=False)
    options = serializers.ListField(
        child=serializers.CharField(allow_blank=True), required=False
    )
    location = serializers.CharField(allow_blank=True, required=False)
    is_active = serializers.BooleanField(required=False)


class VoteSerializer(serializers.Serializer):
    selected_option = serializers.CharField(allow_blank=True)
    respondent = serializers.CharField(allow_blank=True, required=False)


class SectionSerializer(serializers.Serializer):
    id = serializers.CharField(required=False)
    title = serializers.CharField(allow_blank=True)
    description = serializers.CharField(allow_blank=True, required=False, default="")


class QuestionSerializer(serializers.Serializer):
    id = serializers.CharField(required=False)
    type = serializers.ChoiceField(choices=QUESTION_TYPES)
    question_text = serializers.CharField(allow_blank=True, required=False, default="")
    required = serializers.BooleanField(required=False, allow_null=True, default=None)
    options = serializers.ListField(
        child=serializers.CharField(allow_blank=True), required=False
    )
    multiple_select = serializers.BooleanField(required=False, allow_null=True)
    section_id = serializers.CharField(required=False, allow_null=True)
    section_index = serializers.IntegerField(required=False, allow_null=True)


class FormSchemaSerializer(serializers.Serializer):
    title = serializers.CharField(allow_blank=True)
    description = serializers.CharField(allow_blank=True, required=False, default="")
    location = serializers.CharField(allow_blank=True)
    category = serializers.CharField(allow_blank=True, allow_null=True, required=False)
    target_audience = serializers.CharField(
        allow_blank=True, allow_null=True, required=False
    )
    is_multi_section = serializers.BooleanField(required=False, default=False)
    sections = SectionSerializer(many=True, required=False)
    questions = QuestionSerializer(many=True, required=False)


class FormResponseSerializer(serializers.Serializer):
    responses = serializers.DictField()
    respondent = serializers.CharField(allow_blank=True, required=False)


class ActivationSerializer(serializers.Serializer):
    is_active = serializers.BooleanField()


class EmailSerializer(serializers.Serializer):
    email = serializers.EmailField()


class TokenSerializer(serializers.Serializer):
    token = serializers.CharField()


class LoginSerializer(serializers.Serializer):
    identifier = serializers.CharField(allow_blank=True)
    password = serializers.CharField(allow_blank=True, trim_whitespace=False)


class NominationSerializer(serializers.Serializer):
    token = serializers.CharField()
    nominations = serializers.DictField(child=serializers.CharField(allow_blank=True))


# Settings are always written with partial=True: absent fields keep their
# stored value and null falls back to the default on the next read.


class AppearanceSerializer(serializers.Serializer):
    primary_color = serializers.CharField(allow_blank=True, allow_null=True)
    secondary_color = serializers.CharField(allow_blank=True, allow_null=True)
    logo_url = serializers.CharField(allow_blank=True, allow_null=True)
    custom_css = serializers.CharField(
        allow_blank=True, allow_null=True, trim_whitespace=False
    )


class ResponseManagementSerializer(serializers.Serializer):
    data_retention_days = serializers.IntegerField(min_value=0, allow_null=True)
    auto_archive_after_days = serializers.IntegerField(min_value=0, allow_null=True)
    response_limit = serializers.IntegerField(min_value=0, allow_null=True)


class NotificationsSerializer(serializers.Serializer):
    email_notifications = serializers.BooleanField(allow_null=True)
    notification_email = serializers.EmailField(allow_blank=True, allow_null=True)
    alert_threshold = serializers.IntegerField(min_value=0, allow_null=True)
    daily_digest = serializers.BooleanField(allow_null=True)


class SecuritySerializer(serializers.Serializer):
    enable_recaptcha = serializers.BooleanField(allow_null=True)
    allowed_ip_ranges = serializers.ListField(
        child=serializers.CharField(), allow_null=True
    )
    require_verification = serializers.BooleanField(allow_null=True)


class IntegrationsSerializer(serializers.Serializer):
    api_keys = serializers.DictField(child=serializers.CharField(), allow_null=True)
    webhook_url = serializers.URLField(allow_blank=True, allow_null=True)
    export_format = serializers.ChoiceField(choices=EXPORT_FORMATS, allow_null=True)


class DefaultsSerializer(serializers.Serializer):
    default_expiry_days = serializers.IntegerField(min_value=0, allow_null=True)
    footer_text = serializers.CharField(allow_blank=True, allow_null=True)
    disclaimer = serializers.CharField(allow_blank=True, allow_null=True)


class SystemSettingsSerializer(serializers.Serializer):
    start_date = serializers.DateTimeField(input_formats=["iso-8601", "%Y-%m-%d"])
    end_date = serializers.DateTimeField(input_formats=["iso-8601", "%Y-%m-%d"])
    is_active = serializers.BooleanField()
    banner_image_url = serializers.CharField(allow_blank=True)
    appearance = AppearanceSerializer()
    response_management = ResponseManagementSerializer()
    notifications = NotificationsSerializer()
    security = SecuritySerializer()
    integrations = IntegrationsSerializer()
    defaults = DefaultsSerializer()


# -----------------------------------------------------------------------------
# Helpers
# -----------------------------------------------------------------------------


class ServicesMixin:
    @cached_property
    def services(self) -> Services:
        return Services()

    def export_format(self, request) -> str:
        requested = request.query_params.get(EXPORT_FORMAT_PARAM)
        if requested:
            return requested
        return self.services.settings.read().integrations.export_format


def _share_data(share: ShareLink) -> dict[str, str]:
    return {"share_path": share.path, "share_url": share.url, "qr_code": share.qr_code}


def _poll_data(poll: Poll) -> dict[str, Any]:
    data = poll.to_document()
    data["status"] = poll.status()
    return data


def _tally_data(tally: PollTally) -> dict[str, Any]:
    return {
        "poll_id": tally.poll_id,
        "total_votes": tally.total_votes,
        "options": [
            {
                "option": option,
                "votes": count,
                "percentage": tally.percentages[option],
            }
            for option, count in tally.counts.items()
        ],
    }


# -----------------------------------------------------------------------------
# Polls
# -----------------------------------------------------------------------------


class PollViewSet(ServicesMixin, viewsets.ViewSet):
    """Administrator poll management plus the public voting endpoints."""

    def get_permissions(self):
        if self.action in ("retrieve", "results"):
            return [permissions.AllowAny()]
        if self.action == "vote":
            return [permissions.AllowAny(), AllowedNetwork()]
        return [IsVerifiedAdmin()]

    def list(self, request):
        polls = self.services.polls.list_polls()
        counts: dict[str, int] = {}
        for response in self.services.store.query(POLL_RESPONSES):
            counts[response.get("poll_id")] = counts.get(response.get("poll_id"), 0) + 1
        return Response(
            [{**_poll_data(p), "response_count": counts.get(p.id, 0)} for p in polls]
        )

    def create(self, request):
        ser = PollSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        poll = self.services.polls.create_poll(**ser.validated_data)
        share = self.services.polls.share_link(poll.id)
        return Response(
            {**_poll_data(poll), **_share_data(share)}, status=status.HTTP_201_CREATED
        )

    def retrieve(self, request, pk=None):
        if is_verified_admin(request.user):
            poll = self.services.polls.get_poll(pk)
        else:
            poll = self.services.polls.get_open_poll(pk)
        return Response(_poll_data(poll))

    def partial_update(self, request, pk=None):
        ser = PollUpdateSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        poll = self.services.polls.update_poll(pk, **ser.validated_data)
        return Response(_poll_data(poll))

    def update(self, request, pk=None):
        ser = PollUpdateSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        poll = self.services.polls.update_poll(pk, **ser.validated_data)
        return Response(_poll_data(poll))

    def destroy(self, request, pk=None):
        self.services.polls.delete_poll(pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"])
    def vote(self, request, pk=None):
        ser = VoteSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        response = self.services.polls.submit_response(
            pk,
            ser.validated_data["selected_option"],
            respondent=ser.validated_data.get("respondent"),
        )
        return Response(response, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["get"])
    def results(self, request, pk=None):
        return Response(_tally_data(self.services.polls.tally(pk)))

    @action(detail=True, methods=["get"])
    def responses(self, request, pk=None):
        self.services.polls.get_poll(pk)
        return Response(self.services.polls.responses(pk))

    @action(detail=True, methods=["get"])
    def export(self, request, pk=None):
        poll = self.services.polls.get_poll(pk)
        rows = export_service.format_poll_responses_for_export(
            self.services.polls.responses(pk)
        )
        return export_service.download(
            rows,
            export_service.title_export_filename(poll.title),
            self.export_format(request),
            headers=["Respondent", "Response", "Location", "Submitted At"],
        )

    @action(detail=True, methods=["get"])
    def share(self, request, pk=None):
        poll = self.services.polls.get_poll(pk)
        return Response(_share_data(self.services.polls.share_link(poll.id)))


# -----------------------------------------------------------------------------
# Feedback forms and questionnaires
# -----------------------------------------------------------------------------


class FormViewSet(ServicesMixin, viewsets.ViewSet):
    """Shared endpoints for both schema kinds; subclasses set ``kind``."""

    kind = FEEDBACK

    def get_permissions(self):
        if self.action == "retrieve":
            return [permissions.AllowAny()]
        if self.action == "respond":
            return [permissions.AllowAny(), AllowedNetwork()]
        return [IsVerifiedAdmin()]

    @property
    def forms(self):
        return self.services.forms(self.kind)

    def _publish(self, request, existing: FormSchema | None = None, http_status=200):
        ser = FormSchemaSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        builder = SchemaBuilder.from_payload(ser.validated_data, existing=existing)
        result = self.forms.publish(builder.build())
        return Response(
            {"schema": result.schema.to_document(), **_share_data(result.share)},
            status=http_status,
        )

    def list(self, request):
        counts: dict[str, int] = {}
        for response in self.services.store.query(self.kind.response_collection):
            form_id = response.get("form_id")
            counts[form_id] = counts.get(form_id, 0) + 1
        return Response(
            [
                {**schema.to_document(), "response_count": counts.get(schema.id, 0)}
                for schema in self.forms.list()
            ]
        )

    def create(self, request):
        return self._publish(request, http_status=status.HTTP_201_CREATED)

    def retrieve(self, request, pk=None):
        """Administrators get the stored schema; respondents get the render-ready form."""
        if is_verified_admin(request.user):
            return Response(self.forms.get(pk).to_document())
        collector = self.services.collector(self.kind)
        return Response(asdict(render(collector.load(pk))))

    def update(self, request, pk=None):
        return self._publish(request, existing=self.forms.get(pk))

    def destroy(self, request, pk=None):
        self.forms.delete(pk)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=True, methods=["post"])
    def respond(self, request, pk=None):
        ser = FormResponseSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        collector = self.services.collector(self.kind)
        response = collector.submit(
            collector.load(pk),
            ser.validated_data["responses"],
            respondent=ser.validated_data.get("respondent"),
        )
        return Response(response, status=status.HTTP_201_CREATED)

    @action(detail=True, methods=["post"])
    def activation(self, request, pk=None):
        ser = ActivationSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        schema = self.forms.set_active(pk, ser.validated_data["is_active"])
        return Response(schema.to_document())

    @action(detail=True, methods=["get"])
    def responses(self, request, pk=None):
        self.forms.get(pk)
        return Response(self.forms.responses(pk))

    @action(detail=True, methods=["get"])
    def export(self, request, pk=None):
        schema = self.forms.get(pk)
        rows = export_service.format_for_export(self.forms.responses(pk), schema)
        headers = ["Respondent", "Location", "Submitted At"] + [
            header for _, header in export_service._question_columns(schema)
        ]
        return export_service.download(
            rows,
            export_service.title_export_filename(schema.title),
            self.export_format(request),
            headers=headers,
        )

    @action(detail=False, methods=["get"], url_path="export")
    def export_all(self, request):
        schemas = {schema.id: schema for schema in self.forms.list()}
        rows, headers = export_service.format_many_for_export(
            self.forms.responses(), schemas
        )
        return export_service.download(
            rows,
            export_service.export_filename(self.kind.export_subject),
            self.export_format(request),
            headers=headers,
        )

    @action(detail=True, methods=["get"])
    def share(self, request, pk=None):
        schema = self.forms.get(pk)
        return Response(_share_data(self.forms.share_link(schema.id)))


class FeedbackFormViewSet(FormViewSet):
    kind = FEEDBACK


class QuestionnaireViewSet(FormViewSet):
    kind = QUESTIONNAIRE


# -----------------------------------------------------------------------------
# Award nominations
# -----------------------------------------------------------------------------


class NominationViewSet(ServicesMixin, viewsets.ViewSet):
    """
    Nominators verify their email, then submit one nominee per category once.

    - POST verify/       email -> sends a verification link
    - GET  status/       ?token= -> verified identity, has_submitted, window status
    - POST (create)      token + nominations
    """

    PUBLIC_ACTIONS = ("categories", "candidates", "verify", "status", "create")

    def get_permissions(self):
        if self.action in self.PUBLIC_ACTIONS:
            return [permissions.AllowAny()]
        return [IsVerifiedAdmin()]

    @property
    def nominations(self):
        return self.services.nominations

    @action(detail=False, methods=["get"])
    def categories(self, request):
        return Response([asdict(c) for c in self.nominations.categories()])

    @action(detail=False, methods=["get"])
    def candidates(self, request):
        return Response(
            [
                {"id": e.id, "full_name": e.full_name, "role": e.role}
                for e in self.nominations.candidates()
            ]
        )

    @action(detail=False, methods=["post"])
    @method_decorator(ratelimit(key="ip", rate="5/m", block=True))
    def verify(self, request):
        ser = EmailSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        identity = self.nominations.check_nominator(ser.validated_data["email"])
        if self.nominations.has_submitted(identity):
            raise errors.DuplicateSubmissionError()
        sent = self.services.auth.send_verification(identity, path="/nominations")
        if not sent:
            raise errors.UnknownError(
                "We couldn't send the verification email. Please try again later."
            )
        return Response({"sent": True})

    @action(detail=False, methods=["get"])
    def status(self, request):
        identity = read_verification_token(request.query_params.get("token", ""))
        return Response(
            {
                "identity": identity,
                "has_submitted": self.nominations.has_submitted(identity),
                "survey_status": self.services.settings.read().survey_status(),
            }
        )

    def create(self, request):
        ser = NominationSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        identity = read_verification_token(ser.validated_data["token"])
        identity = self.nominations.check_nominator(identity)
        submission = self.nominations.submit(
            identity, ser.validated_data["nominations"]
        )
        return Response(submission, status=status.HTTP_201_CREATED)

    def list(self, request):
        return Response(self.nominations.submissions())

    @action(detail=False, methods=["get"])
    def results(self, request):
        return Response([result.to_dict() for result in self.nominations.results()])

    @action(detail=False, methods=["get"])
    def export(self, request):
        rows = export_service.format_nomination_results(self.nominations.results())
        return export_service.download(
            rows,
            export_service.results_filename("nominations"),
            self.export_format(request),
            headers=["Category", "Nominee", "Votes"],
        )


# -----------------------------------------------------------------------------
# Settings and dashboard
# -----------------------------------------------------------------------------


class SettingsViewSet(ServicesMixin, viewsets.ViewSet):
    """The singleton system settings document.

    Routed by hand in urls.py: there is no collection or primary key.
    """

    def get_permissions(self):
        if self.action == "public":
            return [permissions.AllowAny()]
        return [IsVerifiedAdmin()]

    def _settings_data(self, system_settings) -> dict[str, Any]:
        return {
            **system_settings.to_document(),
            "survey_status": system_settings.survey_status(),
        }

    def current(self, request):
        return Response(self._settings_data(self.services.settings.read()))

    def update_settings(self, request):
        # Unknown keys, including the derived survey_status, are dropped
        ser = SystemSettingsSerializer(data=request.data, partial=True)
        ser.is_valid(raise_exception=True)
        saved = self.services.settings.update(ser.validated_data)
        return Response(self._settings_data(saved))

    def banner(self, request):
        upload = request.FILES.get("banner")
        if upload is None:
            raise errors.ValidationError("Please choose an image to upload.")
        saved = self.services.settings.replace_banner(upload)
        return Response(self._settings_data(saved))

    def public(self, request):
        """What respondent-facing pages need: window, banner and branding."""
        current = self.services.settings.read()
        return Response(
            {
                "start_date": current.start_date.isoformat(),
                "end_date": current.end_date.isoformat(),
                "survey_status": current.survey_status(),
                "banner_image_url": current.banner_image_url,
                "appearance": asdict(current.appearance),
                "footer_text": current.defaults.footer_text,
                "disclaimer": current.defaults.disclaimer,
            }
        )


@api_view(["GET"])
@permission_classes([IsVerifiedAdmin])
def dashboard(request):
    services = Services()
    store = services.store
    summary = compute_dashboard_summary(
        survey_status=services.settings.read().survey_status(),
        nominations=store.count(NOMINATIONS),
        polls=store.query(POLLS),
        poll_responses=store.query(POLL_RESPONSES),
        feedback_forms=store.query(FEEDBACK_FORMS),
        feedback_responses=store.query(FEEDBACK_RESPONSES),
        questionnaires=store.query(QUESTIONNAIRES),
        questionnaire_responses=store.query(QUESTIONNAIRE_RESPONSES),
    )
    return Response(asdict(summary))


# -----------------------------------------------------------------------------
# Authentication
# -----------------------------------------------------------------------------


class AuthViewSet(ServicesMixin, viewsets.ViewSet):
    def get_permissions(self):
        if self.action in ("me", "logout"):
            return [permissions.IsAuthenticated()]
        return [permissions.AllowAny()]

    @action(detail=False, methods=["post"])
    @method_decorator(ratelimit(key="ip", rate="10/m", block=True))
    def login(self, request):
        ser = LoginSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        tokens = self.services.auth.sign_in(
            request._request,
            ser.validated_data["identifier"],
            ser.validated_data["password"],
        )
        return Response(tokens)

    @action(detail=False, methods=["post"])
    def logout(self, request):
        self.services.auth.sign_out(request._request)
        return Response(status=status.HTTP_204_NO_CONTENT)

    @action(detail=False, methods=["get"])
    def me(self, request):
        user = self.services.auth.current_identity(request)
        return Response(
            {
                "id": user.id,
                "username": user.get_username(),
                "email": user.email,
                "is_staff": user.is_staff,
                "email_verified": self.services.auth.is_email_verified(user),
            }
        )

    @action(detail=False, methods=["post"], url_path="send-verification")
    @method_decorator(ratelimit(key="ip", rate="5/m", block=True))
    def send_verification(self, request):
        user = self.services.auth.current_identity(request)
        if user is not None:
            email = user.email
        else:
            ser = EmailSerializer(data=request.data)
            ser.is_valid(raise_exception=True)
            email = ser.validated_data["email"]
        sent = self.services.auth.send_verification(email)
        if not sent:
            raise errors.UnknownError(
                "We couldn't send the verification email. Please try again later."
            )
        return Response({"sent": True})

    @action(detail=False, methods=["post"])
    def verify(self, request):
        ser = TokenSerializer(data=request.data)
        ser.is_valid(raise_exception=True)
        email = self.services.auth.verify_token(ser.validated_data["token"])
        return Response({"email": normalise_identity(email), "verified": True})


@api_view(["GET"])
@permission_classes([permissions.AllowAny])
def healthcheck(request):
    connectivity = Services().connectivity
    return Response({"status": "ok", "online": connectivity.is_online})
