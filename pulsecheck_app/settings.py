from datetime import timedelta
import os
from pathlib import Path
import sys

import environ

# Detect if running tests
TESTING = "pytest" in sys.modules or "test" in sys.argv

env = environ.Env(
    DEBUG=(bool, False),
    SECRET_KEY=(str, ""),
    ALLOWED_HOSTS=(list, ["localhost", "127.0.0.1"]),
    SECURE_SSL_REDIRECT=(bool, False),
    CSRF_TRUSTED_ORIGINS=(list, []),
    BRAND_TITLE=(str, "PulseCheck"),
    SITE_URL=(str, "http://localhost:8000"),
    # Connectivity probing (empty URL disables probing; the app is then always online)
    PULSECHECK_CONNECTIVITY_PROBE_URL=(str, ""),
    PULSECHECK_CONNECTIVITY_PROBE_INTERVAL=(float, 30.0),
    PULSECHECK_CONNECTIVITY_PROBE_TIMEOUT=(float, 5.0),
    # Retry policy for writes to the document store
    PULSECHECK_RETRY_ATTEMPTS=(int, 3),
    PULSECHECK_RETRY_BASE_DELAY=(float, 1.0),
)

BASE_DIR = Path(__file__).resolve().parent.parent
env_file = BASE_DIR / ".env"
if env_file.exists():
    environ.Env.read_env(env_file)

DEBUG = env("DEBUG")
SECRET_KEY = env("SECRET_KEY") or os.urandom(32).hex()
ALLOWED_HOSTS = env("ALLOWED_HOSTS") + (["testserver"] if TESTING else [])
CSRF_TRUSTED_ORIGINS = env("CSRF_TRUSTED_ORIGINS")

DATABASES = {
    "default": env.db(
        "DATABASE_URL", default=f"sqlite:///{BASE_DIR / 'db.sqlite3'}"
    ),
}

BRAND_TITLE = env("BRAND_TITLE")
SITE_URL = "http://localhost:8000" if DEBUG else env("SITE_URL")

INSTALLED_APPS = [
    "django.contrib.auth",
    "django.contrib.contenttypes",
    "django.contrib.sessions",
    "django.contrib.messages",
    "django.contrib.staticfiles",
    # Third party
    "corsheaders",
    "axes",
    "csp",
    "rest_framework",
    "rest_framework_simplejwt",
    # Local apps
    "pulsecheck_app.core",
    "pulsecheck_app.surveys",
    "pulsecheck_app.polls",
    "pulsecheck_app.nominations",
    "pulsecheck_app.api",
]

MIDDLEWARE = [
    "django.middleware.security.SecurityMiddleware",
    "whitenoise.middleware.WhiteNoiseMiddleware",
    "corsheaders.middleware.CorsMiddleware",
    "csp.middleware.CSPMiddleware",
    "django.contrib.sessions.middleware.SessionMiddleware",
    "django.middleware.common.CommonMiddleware",
    "django.middleware.csrf.CsrfViewMiddleware",
    "django.contrib.auth.middleware.AuthenticationMiddleware",
    "django.contrib.messages.middleware.MessageMiddleware",
    "django.middleware.clickjacking.XFrameOptionsMiddleware",
    "axes.middleware.AxesMiddleware",
]

ROOT_URLCONF = "pulsecheck_app.urls"

TEMPLATES = [
    {
        "BACKEND": "django.template.backends.django.DjangoTemplates",
        "DIRS": [],
        "APP_DIRS": True,
        "OPTIONS": {
            "context_processors": [
                "django.template.context_processors.debug",
                "django.template.context_processors.request",
                "django.contrib.auth.context_processors.auth",
                "django.contrib.messages.context_processors.messages",
            ],
        },
    }
]

WSGI_APPLICATION = "pulsecheck_app.wsgi.application"

AUTH_PASSWORD_VALIDATORS = [
    {
        "NAME": "django.contrib.auth.password_validation.UserAttributeSimilarityValidator"
    },
    {
        "NAME": "django.contrib.auth.password_validation.MinimumLengthValidator",
        "OPTIONS": {"min_length": 12},
    },
    {"NAME": "django.contrib.auth.password_validation.CommonPasswordValidator"},
    {"NAME": "django.contrib.auth.password_validation.NumericPasswordValidator"},
]

# Prefer the default ModelBackend first so authenticate() can work without a request
# in test helpers like client.login; Axes still enforces lockouts for request-aware flows.
AUTHENTICATION_BACKENDS = [
    "django.contrib.auth.backends.ModelBackend",
    "axes.backends.AxesStandaloneBackend",
]

LANGUAGE_CODE = "en-gb"
TIME_ZONE = "UTC"
USE_I18N = True
USE_TZ = True

STATIC_URL = "/static/"
STATIC_ROOT = BASE_DIR / "staticfiles"

STORAGES = {
    "default": {
        "BACKEND": "django.core.files.storage.FileSystemStorage",
    },
    "staticfiles": {
        "BACKEND": "whitenoise.storage.CompressedStaticFilesStorage",
    },
}

# Banner uploads
MEDIA_URL = "/media/"
MEDIA_ROOT = BASE_DIR / "media"

DEFAULT_AUTO_FIELD = "django.db.models.BigAutoField"

# Security headers
SESSION_COOKIE_SECURE = not DEBUG and not TESTING
CSRF_COOKIE_SECURE = not DEBUG and not TESTING
SECURE_HSTS_SECONDS = 31536000 if not DEBUG else 0
SECURE_SSL_REDIRECT = env("SECURE_SSL_REDIRECT")
X_FRAME_OPTIONS = "DENY"
SECURE_CONTENT_TYPE_NOSNIFF = True
SESSION_COOKIE_HTTPONLY = True
SESSION_COOKIE_SAMESITE = "Lax"

if not DEBUG:
    SECURE_PROXY_SSL_HEADER = ("HTTP_X_FORWARDED_PROTO", "https")
    USE_X_FORWARDED_HOST = True

# Content Security Policy configuration (django-csp 4.0+ format)
CONTENT_SECURITY_POLICY = {
    "DIRECTIVES": {
        "default-src": ("'self'",),
        "script-src": ("'self'", "https://cdn.jsdelivr.net"),
        "style-src": ("'self'", "'unsafe-inline'"),
        "img-src": ("'self'", "data:"),
        "frame-ancestors": ("'self'",),
    },
}

# CORS: the public response endpoints may be embedded by the front end host
_cors_origins = env.str("CORS_ALLOWED_ORIGINS", default="")
CORS_ALLOWED_ORIGINS = [
    origin.strip() for origin in _cors_origins.split(",") if origin.strip()
]
if DEBUG:
    CORS_ALLOWED_ORIGINS.extend(["http://localhost:3000", "http://127.0.0.1:3000"])
CORS_URLS_REGEX = r"^/api/.*$"

# Axes configuration for brute-force protection on the login endpoint
AXES_FAILURE_LIMIT = 5
AXES_COOLOFF_TIME = 1  # hour
AXES_LOCKOUT_PARAMETERS = ["username", "ip_address"]
AXES_ENABLED = not TESTING

RATELIMIT_ENABLE = True

# DRF defaults
REST_FRAMEWORK = {
    "DEFAULT_PERMISSION_CLASSES": [
        "rest_framework.permissions.IsAuthenticatedOrReadOnly",
    ],
    "DEFAULT_AUTHENTICATION_CLASSES": [
        "rest_framework_simplejwt.authentication.JWTAuthentication",
        "rest_framework.authentication.SessionAuthentication",
    ],
    "DEFAULT_THROTTLE_CLASSES": [
        "rest_framework.throttling.AnonRateThrottle",
        "rest_framework.throttling.UserRateThrottle",
    ],
    "DEFAULT_THROTTLE_RATES": {
        "anon": "60/minute",
        "user": "120/minute",
    },
    "EXCEPTION_HANDLER": "pulsecheck_app.api.exceptions.pulsecheck_exception_handler",
}

SIMPLE_JWT = {
    "ACCESS_TOKEN_LIFETIME": timedelta(minutes=30),
    "REFRESH_TOKEN_LIFETIME": timedelta(days=7),
    "ROTATE_REFRESH_TOKENS": False,
    "BLACKLIST_AFTER_ROTATION": False,
}

# Disable throttling during tests to prevent rate limit errors
if TESTING or os.environ.get("PYTEST_CURRENT_TEST"):
    REST_FRAMEWORK["DEFAULT_THROTTLE_CLASSES"] = []
    RATELIMIT_ENABLE = False

# Email backend
if TESTING or os.environ.get("PYTEST_CURRENT_TEST"):
    EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
elif DEBUG:
    EMAIL_BACKEND = env(
        "EMAIL_BACKEND", default="django.core.mail.backends.console.EmailBackend"
    )
else:
    EMAIL_BACKEND = env(
        "EMAIL_BACKEND", default="django.core.mail.backends.smtp.EmailBackend"
    )

DEFAULT_FROM_EMAIL = env("DEFAULT_FROM_EMAIL", default="no-reply@example.com")
EMAIL_HOST = env("EMAIL_HOST", default="localhost")
EMAIL_PORT = env.int("EMAIL_PORT", default=587)
EMAIL_USE_TLS = env.bool("EMAIL_USE_TLS", default=True)
EMAIL_HOST_USER = env("EMAIL_HOST_USER", default="")
EMAIL_HOST_PASSWORD = env("EMAIL_HOST_PASSWORD", default="")
EMAIL_TIMEOUT = env.int("EMAIL_TIMEOUT", default=10)

# ===================================================================
# PulseCheck application settings
# ===================================================================

# Locations a poll, form or questionnaire can be published for
PULSECHECK_LOCATIONS = env.list(
    "PULSECHECK_LOCATIONS",
    default=[
        "Qaras Hotels: House 3",
        "Qaras Hotels: Bluxton",
        "Online",
        "Marketing",
        "Customer Service",
    ],
)

PULSECHECK_QUESTIONNAIRE_CATEGORIES = [
    "Customer Satisfaction",
    "Employee Feedback",
    "Market Research",
    "Product Feedback",
    "Event Feedback",
    "Other",
]

# Staff roster used for award nomination candidates
PULSECHECK_ROSTER_PATH = env(
    "PULSECHECK_ROSTER_PATH",
    default=str(BASE_DIR / "pulsecheck_app" / "nominations" / "data" / "employees.json"),
)

# Nominators must use an address at this domain (empty allows any roster email)
PULSECHECK_NOMINATION_EMAIL_DOMAIN = env.str("PULSECHECK_NOMINATION_EMAIL_DOMAIN", default="")

PULSECHECK_RETRY_ATTEMPTS = env("PULSECHECK_RETRY_ATTEMPTS")
PULSECHECK_RETRY_BASE_DELAY = env("PULSECHECK_RETRY_BASE_DELAY")

PULSECHECK_CONNECTIVITY_PROBE_URL = env("PULSECHECK_CONNECTIVITY_PROBE_URL")
PULSECHECK_CONNECTIVITY_PROBE_INTERVAL = env("PULSECHECK_CONNECTIVITY_PROBE_INTERVAL")
PULSECHECK_CONNECTIVITY_PROBE_TIMEOUT = env("PULSECHECK_CONNECTIVITY_PROBE_TIMEOUT")

# Banner image upload limits
PULSECHECK_BANNER_MAX_BYTES = 5 * 1024 * 1024  # 5MB
PULSECHECK_BANNER_CONTENT_TYPES = ["image/jpeg", "image/png", "image/webp"]

# Email verification links stay valid for 24 hours
PULSECHECK_VERIFICATION_MAX_AGE = env.int(
    "PULSECHECK_VERIFICATION_MAX_AGE", default=60 * 60 * 24
)

# Logging Configuration
LOGGING = {
    "version": 1,
    "disable_existing_loggers": False,
    "formatters": {
        "verbose": {
            "format": "[{levelname}] {asctime} {name} {message}",
            "style": "{",
        },
        "simple": {
            "format": "[{levelname}] {message}",
            "style": "{",
        },
    },
    "handlers": {
        "console": {
            "class": "logging.StreamHandler",
            "formatter": "verbose",
        },
    },
    "root": {
        "handlers": ["console"],
        "level": "INFO",
    },
    "loggers": {
        "django": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "pulsecheck_app": {
            "handlers": ["console"],
            "level": "INFO",
            "propagate": False,
        },
        "pulsecheck_app.core.retry": {
            "handlers": ["console"],
            "level": "DEBUG" if DEBUG else "INFO",
            "propagate": False,
        },
    },
}
