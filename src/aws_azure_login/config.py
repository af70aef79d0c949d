from __future__ import annotations

import configparser
import logging
import os
import re
from pathlib import Path
from typing import Literal, Optional, Union

import yaml
from pydantic import BaseModel, Field, field_validator, model_validator

from .errors import ProfileConfigError, ProfileNotFoundError


logger = logging.getLogger(__name__)

_ENV_VAR_PATTERN = re.compile(r"\$\{([A-Z0-9_]+)\}")

# Profile keys that may be overridden from the environment (lowercase or uppercase names).
PROFILE_ENV_KEYS: tuple[str, ...] = (
    "azure_tenant_id",
    "azure_app_id_uri",
    "azure_default_username",
    "azure_default_password",
    "azure_default_role_arn",
    "azure_default_duration_hours",
)


def _expand_env_vars(value: object) -> object:
    if isinstance(value, str):
        def repl(match: re.Match[str]) -> str:
            var = match.group(1)
            return os.getenv(var, "")

        return _ENV_VAR_PATTERN.sub(repl, value)
    if isinstance(value, list):
        return [_expand_env_vars(v) for v in value]
    if isinstance(value, dict):
        return {k: _expand_env_vars(v) for k, v in value.items()}
    return value


def _env_bool(name: str, default: bool = False) -> bool:
    raw = (os.getenv(name, "") or "").strip().lower()
    if not raw:
        return bool(default)
    return raw in {"1", "true", "t", "yes", "y", "on"}


def _deep_merge(base: object, override: object) -> object:
    if isinstance(base, dict) and isinstance(override, dict):
        out = dict(base)
        for k, v in override.items():
            if k in out:
                out[k] = _deep_merge(out[k], v)
            else:
                out[k] = v
        return out
    return override


def _default_config_from_env() -> dict:
    """
    Env-only defaults, so most users never need a YAML file.

    CLI flags are applied on top of whatever this + YAML produce.
    """
    return {
        "browser": {
            "mode": os.getenv("AWS_AZURE_LOGIN_MODE", "cli"),
            "disable_sandbox": _env_bool("AWS_AZURE_LOGIN_NO_SANDBOX"),
            "no_prompt": _env_bool("AWS_AZURE_LOGIN_NO_PROMPT"),
            "enable_chrome_network_service": _env_bool("AWS_AZURE_LOGIN_ENABLE_CHROME_NETWORK_SERVICE"),
            "enable_chrome_seamless_sso": _env_bool("AWS_AZURE_LOGIN_ENABLE_CHROME_SEAMLESS_SSO"),
            "no_disable_extensions": _env_bool("AWS_AZURE_LOGIN_NO_DISABLE_EXTENSIONS"),
            "disable_gpu": _env_bool("AWS_AZURE_LOGIN_DISABLE_GPU"),
            "proxy": os.getenv("https_proxy") or os.getenv("HTTPS_PROXY") or "",
            "user_data_dir": os.getenv("AWS_AZURE_LOGIN_CHROMIUM_DIR", str(Path.home() / ".aws" / "chromium")),
        },
        "aws": {
            "config_file": os.getenv("AWS_CONFIG_FILE", str(Path.home() / ".aws" / "config")),
            "no_verify_ssl": _env_bool("AWS_AZURE_LOGIN_NO_VERIFY_SSL"),
        },
        "logging": {
            "level": os.getenv("LOG_LEVEL", "INFO"),
            "file_path": os.getenv("LOG_FILE", ""),
        },
    }


class BrowserConfig(BaseModel):
    """
    How the controlled browser is launched and who drives it.

    Modes:
    - `cli`: headless; the login screens are proxied through the terminal.
    - `gui`: visible window; the operator completes the login there.
    - `debug`: visible window, but still proxied through the terminal (watch what the automation does).
    """

    mode: Literal["cli", "gui", "debug"] = "cli"
    disable_sandbox: bool = False
    no_prompt: bool = False
    enable_chrome_network_service: bool = False
    enable_chrome_seamless_sso: bool = False
    no_disable_extensions: bool = False
    disable_gpu: bool = False
    proxy: str = ""
    user_data_dir: str = str(Path.home() / ".aws" / "chromium")

    @property
    def headless(self) -> bool:
        return self.mode == "cli"

    @property
    def cli_proxy(self) -> bool:
        return self.mode in ("cli", "debug")


class LoginTimeouts(BaseModel):
    # Each login screen gets this long to move on after we submit.
    transition_seconds: float = Field(default=60.0, gt=0)
    # Sleep between passes when no known screen is showing.
    poll_interval_seconds: float = Field(default=1.0, gt=0)
    # Give up once no known screen has shown for longer than this.
    max_unrecognized_seconds: float = Field(default=30.0, ge=0)
    short_pause_seconds: float = Field(default=0.5, ge=0)
    # Azure AD re-renders the same input briefly after submit; only then check whether it went away.
    transition_settle_seconds: float = Field(default=1.0, ge=0)
    viewport_width: int = 425
    viewport_height: int = 550

    @property
    def transition_ms(self) -> float:
        return self.transition_seconds * 1000


class AwsConfig(BaseModel):
    config_file: str = str(Path.home() / ".aws" / "config")
    no_verify_ssl: bool = False


class LoggingConfig(BaseModel):
    level: str = "INFO"
    file_path: str = ""


class AppConfig(BaseModel):
    browser: BrowserConfig = BrowserConfig()
    timeouts: LoginTimeouts = LoginTimeouts()
    aws: AwsConfig = AwsConfig()
    logging: LoggingConfig = LoggingConfig()


def load_config(path: Union[str, Path, None] = None) -> AppConfig:
    raw: dict = {}
    if path:
        p = Path(path)
        if p.exists():
            raw = yaml.safe_load(p.read_text(encoding="utf-8")) or {}
            raw = _expand_env_vars(raw)  # supports ${ENV_VAR} in YAML

    merged = _deep_merge(_default_config_from_env(), raw)
    return AppConfig.model_validate(merged)


class ProfileConfig(BaseModel):
    azure_tenant_id: str = ""
    azure_app_id_uri: str = ""
    azure_default_username: str = ""
    azure_default_password: str = Field(default="", repr=False)
    azure_default_role_arn: str = ""
    azure_default_duration_hours: Optional[int] = None
    azure_default_remember_me: bool = False
    region: str = ""

    @field_validator("azure_default_duration_hours", mode="before")
    @classmethod
    def _blank_duration_is_unset(cls, value: object) -> object:
        if isinstance(value, str) and not value.strip():
            return None
        return value

    @field_validator("azure_default_remember_me", mode="before")
    @classmethod
    def _blank_remember_me_is_false(cls, value: object) -> object:
        if value is None or (isinstance(value, str) and not value.strip()):
            return False
        return value

    @model_validator(mode="after")
    def _require_azure_ids(self) -> "ProfileConfig":
        if not self.azure_tenant_id or not self.azure_app_id_uri:
            raise ValueError("azure_tenant_id and azure_app_id_uri are required")
        return self


def _profile_section_name(profile_name: str) -> str:
    return "default" if profile_name == "default" else f"profile {profile_name}"


def _read_aws_config(config_file: Union[str, Path]) -> configparser.ConfigParser:
    cp = configparser.ConfigParser(interpolation=None)
    cp.read(Path(config_file).expanduser(), encoding="utf-8")
    return cp


def load_profile_from_env() -> dict[str, str]:
    env: dict[str, str] = {}
    for opt in PROFILE_ENV_KEYS:
        value = os.getenv(opt) or os.getenv(opt.upper())
        if value:
            env[opt] = value
    masked = dict(env)
    if "azure_default_password" in masked:
        masked["azure_default_password"] = "xxxxxxxxxx"
    logger.debug("Profile overrides from environment: %s", masked)
    return env


def load_profile(profile_name: str, *, config_file: Union[str, Path]) -> ProfileConfig:
    cp = _read_aws_config(config_file)
    section = _profile_section_name(profile_name)
    if not cp.has_section(section):
        raise ProfileNotFoundError(
            f"Unknown profile '{profile_name}'. Add a [{section}] section with azure_tenant_id and "
            f"azure_app_id_uri to {config_file}."
        )

    raw: dict[str, str] = dict(cp.items(section))
    merged = {**raw, **load_profile_from_env()}
    try:
        profile = ProfileConfig.model_validate(merged)
    except ValueError as e:
        raise ProfileConfigError(f"Profile '{profile_name}' is not configured properly. ({e})") from e

    logger.info("Logging in with profile '%s'...", profile_name)
    return profile


def list_profile_names(*, config_file: Union[str, Path]) -> list[str]:
    """
    Names of every profile in the AWS config file that is set up for Azure AD login.
    """
    cp = _read_aws_config(config_file)
    names: list[str] = []
    for section in cp.sections():
        if section == "default":
            name = "default"
        elif section.startswith("profile "):
            name = section[len("profile "):].strip()
        else:
            continue
        if cp.get(section, "azure_tenant_id", fallback=""):
            names.append(name)
    return names
