import pytest

from persistent_http.config import CA_FILE_ENV_VAR, NAME_ENV_VAR


@pytest.fixture(autouse=True)
def _isolated_environment(monkeypatch):
    monkeypatch.delenv(NAME_ENV_VAR, raising=False)
    monkeypatch.delenv(CA_FILE_ENV_VAR, raising=False)
