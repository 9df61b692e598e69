# ===============================================================================
# PYTEST CONFIGURATION FOR THE EU VAT CORE
# ===============================================================================
"""
Global test configuration.

Test Structure:
- tests/ mirrors apps/ structure for app-specific tests
- Run specific app tests: pytest tests/vat/
- Run all tests: pytest tests/
"""

import os

import django


def pytest_configure():
    """Configure Django settings for pytest"""
    os.environ.setdefault("DJANGO_SETTINGS_MODULE", "config.settings.test")

    # Configure Django
    django.setup()


# ===============================================================================
# PYTEST FIXTURES
# ===============================================================================

import pytest  # noqa: E402


@pytest.fixture
def rate_cache():
    """Rate cache loaded with ES, DE and DK rates"""
    from tests.vat.factories import make_rate_cache  # noqa: PLC0415

    return make_rate_cache()
