# ===============================================================================
# PYTEST CONFIGURATION FOR THE INVOICING PLATFORM
# ===============================================================================
"""
Global test configuration.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- tests/factories/ holds plain helper factories
- Naming convention: test_{feature}.py

Test Discovery:
- Run app tests: pytest tests/invoicing/
- Run all tests: pytest tests/
"""

import os

import django


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.test")

    django.setup()


# ===============================================================================
# PYTEST FIXTURES
# ===============================================================================

import pytest  # noqa: E402
from django.core.cache import cache  # noqa: E402


@pytest.fixture(autouse=True)
def clear_cache():
    """Cached authority tokens must not leak between tests"""
    cache.clear()
    yield
    cache.clear()

