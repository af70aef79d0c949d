from __future__ import annotations

import json
from pathlib import Path

import pytest

import aws_azure_login.cli as cli
from aws_azure_login.errors import UserFacingFailure
from aws_azure_login.sts import AwsCredentials


CREDS = AwsCredentials("AKID", "SECRET", "TOKEN")


@pytest.fixture()
def base_args(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> list[str]:
    for key in ("AWS_PROFILE", "AWS_AZURE_LOGIN_MODE", "AWS_AZURE_LOGIN_NO_PROMPT", "LOG_FILE"):
        monkeypatch.delenv(key, raising=False)
    return ["--env-file", str(tmp_path / "missing.env"), "--config", str(tmp_path / "missing.yaml")]


def test_single_profile_prints_credential_process_json(
    base_args: list[str], monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    seen: dict = {}

    def fake_login_profile(name, cfg, **kwargs):
        seen["name"] = name
        seen["cfg"] = cfg
        return CREDS

    monkeypatch.setattr(cli, "login_profile", fake_login_profile)
    rc = cli.main(base_args + ["-p", "dev", "--no-prompt", "-m", "debug", "--no-verify-ssl", "--no-sandbox"])

    assert rc == 0
    assert seen["name"] == "dev"
    assert seen["cfg"].browser.mode == "debug"
    assert seen["cfg"].browser.no_prompt is True
    assert seen["cfg"].browser.disable_sandbox is True
    assert seen["cfg"].aws.no_verify_ssl is True
    out = json.loads(capsys.readouterr().out)
    assert out == {"Version": 1, "AccessKeyId": "AKID", "SecretAccessKey": "SECRET", "SessionToken": "TOKEN"}


def test_profile_defaults_to_aws_profile(
    base_args: list[str], monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    seen: list[str] = []
    monkeypatch.setenv("AWS_PROFILE", "ops")
    monkeypatch.setattr(cli, "login_profile", lambda name, cfg, **kw: seen.append(name) or CREDS)

    assert cli.main(base_args + ["--format", "env"]) == 0
    assert seen == ["ops"]
    assert "export AWS_ACCESS_KEY_ID=AKID" in capsys.readouterr().out


def test_login_failure_exits_nonzero(base_args: list[str], monkeypatch: pytest.MonkeyPatch) -> None:
    def fail(name, cfg, **kwargs):
        raise UserFacingFailure("Your sign-in was blocked.")

    monkeypatch.setattr(cli, "login_profile", fail)
    assert cli.main(base_args) == 1


def test_all_profiles_reports_partial_failure(
    base_args: list[str], monkeypatch: pytest.MonkeyPatch, capsys: pytest.CaptureFixture[str]
) -> None:
    monkeypatch.setattr(
        cli, "login_all", lambda cfg, **kw: {"dev": CREDS, "prod": UserFacingFailure("blocked")}
    )
    assert cli.main(base_args + ["--all-profiles"]) == 1

    lines = capsys.readouterr().out.splitlines()
    assert len(lines) == 1
    assert json.loads(lines[0])["Profile"] == "dev"


def test_profile_and_all_profiles_are_exclusive(base_args: list[str]) -> None:
    with pytest.raises(SystemExit):
        cli.main(base_args + ["-p", "dev", "--all-profiles"])
