import pytest


@pytest.fixture(autouse=True)
def _portal_test_settings(settings, tmp_path):
    # Prevent SecurityMiddleware from forcing https://testserver/...
    settings.SECURE_SSL_REDIRECT = False
    settings.SESSION_COOKIE_SECURE = False
    settings.CSRF_COOKIE_SECURE = False
    settings.SECURE_HSTS_SECONDS = 0

    # Result uploads land in a throwaway directory
    settings.MEDIA_ROOT = str(tmp_path / "media")

    # Mail goes to the outbox
    settings.EMAIL_BACKEND = "django.core.mail.backends.locmem.EmailBackend"
    settings.PASSWORD_HASHERS = ["django.contrib.auth.hashers.MD5PasswordHasher"]
