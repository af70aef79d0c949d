from __future__ import annotations

import argparse
import json
import logging
import os
import sys
from pathlib import Path
from typing import List, Optional

from dotenv import load_dotenv

from .config import AppConfig, load_config
from .errors import CLIError
from .logging_config import configure_logging
from .login import login_all, login_profile
from .prompts import Prompter
from .sts import AwsCredentials


logger = logging.getLogger("aws_azure_login")


def _build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(
        prog="aws-azure-login",
        description="Log into AWS through Azure AD (SAML) and print short-lived credentials.",
    )
    p.add_argument(
        "--env-file",
        default=".env",
        help="Path to a dotenv file (default: .env). If missing, env vars must already be set.",
    )
    p.add_argument("--config", default="config.yaml", help="Optional YAML settings file (default: config.yaml)")

    target = p.add_mutually_exclusive_group()
    target.add_argument(
        "-p",
        "--profile",
        default=None,
        help="AWS profile to log into (default: $AWS_PROFILE or 'default').",
    )
    target.add_argument(
        "-a",
        "--all-profiles",
        action="store_true",
        help="Log into every profile that has azure_tenant_id set, one after another.",
    )

    p.add_argument(
        "-m",
        "--mode",
        choices=("cli", "gui", "debug"),
        default=None,
        help=(
            "cli: headless, screens proxied through the terminal (default). "
            "gui: complete the login in a browser window. "
            "debug: browser window visible, screens still proxied through the terminal."
        ),
    )
    p.add_argument("--no-sandbox", action="store_true", help="Disable the Chromium sandbox (usually for Docker).")
    p.add_argument(
        "--no-prompt",
        action="store_true",
        help="Use the configured default username/password/role/duration without asking.",
    )
    p.add_argument(
        "--enable-chrome-network-service",
        action="store_true",
        help="Enable Chromium's network service (needed for some 3XX redirects).",
    )
    p.add_argument("--no-verify-ssl", action="store_true", help="Do not verify SSL certificates when calling STS.")
    p.add_argument(
        "--enable-chrome-seamless-sso",
        action="store_true",
        help="Allow Azure AD Seamless SSO (Kerberos) in Chromium.",
    )
    p.add_argument(
        "--no-disable-extensions",
        action="store_true",
        help="Keep browser extensions enabled (Playwright disables them by default).",
    )
    p.add_argument("--disable-gpu", action="store_true", help="Disable GPU acceleration.")
    p.add_argument(
        "--format",
        choices=("json", "env"),
        default="json",
        help="json: credential_process output (default). env: shell export lines.",
    )
    return p


def _apply_cli_overrides(cfg: AppConfig, args: argparse.Namespace) -> AppConfig:
    updates: dict = {}
    if args.mode:
        updates["mode"] = args.mode
    for flag, field in (
        ("no_sandbox", "disable_sandbox"),
        ("no_prompt", "no_prompt"),
        ("enable_chrome_network_service", "enable_chrome_network_service"),
        ("enable_chrome_seamless_sso", "enable_chrome_seamless_sso"),
        ("no_disable_extensions", "no_disable_extensions"),
        ("disable_gpu", "disable_gpu"),
    ):
        if getattr(args, flag):
            updates[field] = True

    browser = cfg.browser.model_copy(update=updates)
    aws = cfg.aws.model_copy(update={"no_verify_ssl": True}) if args.no_verify_ssl else cfg.aws
    return cfg.model_copy(update={"browser": browser, "aws": aws})


def _echo(message: str) -> None:
    # stdout is reserved for the credentials (credential_process reads it).
    print(message, file=sys.stderr)


def _ask(prompt: str) -> str:
    sys.stderr.write(prompt)
    sys.stderr.flush()
    return input()


def _render(creds: AwsCredentials, fmt: str, *, profile: Optional[str] = None) -> str:
    if fmt == "env":
        header = f"# profile {profile}\n" if profile else ""
        return header + creds.to_env_exports()
    payload = creds.to_credential_process()
    if profile:
        payload = {"Profile": profile, **payload}
    return json.dumps(payload)


def main(argv: Optional[List[str]] = None) -> int:
    args = _build_parser().parse_args(argv)

    env_path = Path(args.env_file)
    if env_path.exists():
        load_dotenv(env_path)

    # Default logging: can be overridden once config is loaded.
    configure_logging(level=os.getenv("LOG_LEVEL", "INFO"))

    try:
        cfg = _apply_cli_overrides(load_config(args.config), args)
        configure_logging(level=cfg.logging.level, file_path=cfg.logging.file_path or None)
        prompter = Prompter(input_fn=_ask, output=_echo)

        if args.all_profiles:
            results = login_all(cfg, prompter=prompter, echo=_echo)
            failed = [name for name, outcome in results.items() if isinstance(outcome, Exception)]
            for name, outcome in results.items():
                if isinstance(outcome, AwsCredentials):
                    print(_render(outcome, args.format, profile=name))
            if failed:
                logger.error("Login failed for profile(s): %s", ", ".join(failed))
                return 1
            return 0

        profile = args.profile or os.getenv("AWS_PROFILE") or "default"
        creds = login_profile(profile, cfg, prompter=prompter, echo=_echo)
        print(_render(creds, args.format))
        return 0
    except KeyboardInterrupt:
        logger.error("Interrupted.")
        return 130
    except CLIError as e:
        logger.error("%s", e)
        return 1
    except Exception:
        logger.exception("Login failed")
        return 1
