import pytest

from order_lifecycle import settings
from order_lifecycle.http_adapters import alerts_cb, payments_cb


@pytest.fixture(autouse=True)
def use_stubs_for_tests(monkeypatch):
    monkeypatch.setattr(settings, "USE_HTTP_ADAPTERS", False)
    monkeypatch.setattr(settings, "DATABASE_URL", None)
    monkeypatch.setattr(settings, "HTTP_RETRY_BACKOFF_BASE", 0.0)
    payments_cb.reset()
    alerts_cb.reset()
