import os

import pytest

from credkeeper.config import Config
from credkeeper.secrets import SecretsStore


@pytest.fixture(autouse=True)
def ensure_workingdir(request):
    working_dir = os.getcwd()
    yield
    os.chdir(working_dir)


@pytest.fixture(autouse=True)
def clean_key_variables(monkeypatch):
    for name in list(os.environ):
        if name.startswith("RAILS_") and name.endswith("_KEY"):
            monkeypatch.delenv(name)
    monkeypatch.delenv("CREDKEEPER_ROOT", raising=False)


@pytest.fixture(autouse=True)
def output(monkeypatch):
    from credkeeper._output import TestBackend, output

    backend = TestBackend()
    monkeypatch.setattr(output, "backend", backend)
    monkeypatch.setattr(output, "enable_debug", False)
    return output


@pytest.fixture
def config(tmp_path):
    return Config(tmp_path)


@pytest.fixture
def store(config):
    return SecretsStore(config)
