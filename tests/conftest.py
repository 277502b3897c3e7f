import pytest

from kxchannel.core_crypto.backend import initialize


@pytest.fixture(scope="session", autouse=True)
def crypto_backend():
    """Every test runs with the backend initialized, as a real process would."""
    initialize()


@pytest.fixture(autouse=True)
def clean_environment(monkeypatch):
    for name in ("PORT", "MAX_MESSAGE_SIZE", "TIMEOUT", "LOG_LEVEL"):
        monkeypatch.delenv("KXCHANNEL_" + name, raising=False)
