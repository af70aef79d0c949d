from __future__ import annotations

import sys
from typing import Any
from pathlib import Path

import pytest


ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from aws_azure_login.config import PROFILE_ENV_KEYS  # noqa: E402


def pytest_configure(config: Any) -> None:
    config.addinivalue_line(
        "markers",
        "live: end-to-end login against a real Azure AD tenant (needs credentials and a browser)",
    )


@pytest.fixture(autouse=True)
def _isolate_profile_env(monkeypatch: pytest.MonkeyPatch) -> None:
    # A developer's own AZURE_* variables must not leak into profile-loading tests.
    for key in PROFILE_ENV_KEYS:
        monkeypatch.delenv(key, raising=False)
        monkeypatch.delenv(key.upper(), raising=False)
