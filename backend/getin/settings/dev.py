from .base import *

DEBUG = True
EMAIL_BACKEND = env("EMAIL_BACKEND", default="django.core.mail.backends.console.EmailBackend")
CORS_ALLOW_ALL_ORIGINS = True
