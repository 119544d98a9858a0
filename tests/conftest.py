import pytest

from songbridge.providers import registry as registry_module


@pytest.fixture(autouse=True)
def fresh_registry(monkeypatch):
    """Every test starts without a cached process-wide registry."""
    monkeypatch.setattr(registry_module, "_default_registry", None)
