from __future__ import annotations

import asyncio
import logging
from typing import Callable, Optional, Sequence, Union

from playwright.async_api import Error as PlaywrightError

from .browser.interceptor import CredentialInterceptor
from .browser.machine import PageStateMachine
from .browser.session import open_session
from .browser.states import LoginContext, State
from .config import AppConfig, BrowserConfig, LoginTimeouts, list_profile_names, load_profile
from .errors import SessionClosedError
from .login_url import build_login_url
from .partitions import endpoint_for_region
from .prompts import Prompter
from .roles import ask_user_for_role_and_duration
from .saml import parse_roles_from_saml_response
from .sts import AwsCredentials, assume_role


logger = logging.getLogger(__name__)


async def perform_login_async(
    url: str,
    *,
    endpoint: str,
    browser: BrowserConfig,
    timeouts: LoginTimeouts,
    prompter: Prompter,
    default_username: str = "",
    default_password: str = "",
    remember_me: bool = False,
    states: Optional[Sequence[State]] = None,
    echo: Callable[[str], None] = print,
) -> str:
    interceptor = CredentialInterceptor(endpoint)

    logger.debug("Loading login page in Chrome")
    async with open_session(browser, timeouts, remember_me=remember_me) as session:
        await interceptor.attach(session)

        try:
            logger.debug("Going to login page")
            await session.navigate(url)
        except (PlaywrightError, SessionClosedError) as e:
            # With a remembered Azure AD session the first page redirects straight to AWS, and the
            # interceptor cuts that navigation short. The loop below sorts out what actually happened.
            logger.debug("Error occurred while loading the first page: %s", e)

        if not browser.cli_proxy:
            echo("Please complete the login in the opened window")
            await interceptor.wait()
            return interceptor.assertion()

        ctx = LoginContext(
            session=session,
            prompter=prompter,
            no_prompt=browser.no_prompt,
            default_username=default_username,
            default_password=default_password,
            remember_me=remember_me,
            timeouts=timeouts,
            echo=echo,
        )
        return await PageStateMachine(ctx, interceptor, states=states).run()


def perform_login(url: str, **kwargs) -> str:
    """
    Run the browser login for `url` and return the raw (base64) SAML assertion.
    """
    return asyncio.run(perform_login_async(url, **kwargs))


def login_profile(
    profile_name: str,
    cfg: AppConfig,
    *,
    prompter: Optional[Prompter] = None,
    echo: Callable[[str], None] = print,
) -> AwsCredentials:
    prompter = prompter or Prompter()
    profile = load_profile(profile_name, config_file=cfg.aws.config_file)

    endpoint = endpoint_for_region(profile.region)
    logger.info("Using AWS SAML endpoint %s", endpoint)

    url = build_login_url(profile.azure_app_id_uri, profile.azure_tenant_id, endpoint)
    assertion = perform_login(
        url,
        endpoint=endpoint,
        browser=cfg.browser,
        timeouts=cfg.timeouts,
        prompter=prompter,
        default_username=profile.azure_default_username,
        default_password=profile.azure_default_password,
        remember_me=profile.azure_default_remember_me,
        echo=echo,
    )

    roles = parse_roles_from_saml_response(assertion)
    role, duration_hours = ask_user_for_role_and_duration(
        roles,
        prompter,
        no_prompt=cfg.browser.no_prompt,
        default_role_arn=profile.azure_default_role_arn,
        default_duration_hours=profile.azure_default_duration_hours,
    )

    return assume_role(
        assertion,
        role,
        duration_hours,
        region=profile.region,
        proxy=cfg.browser.proxy,
        no_verify_ssl=cfg.aws.no_verify_ssl,
    )


def login_all(
    cfg: AppConfig,
    *,
    prompter: Optional[Prompter] = None,
    echo: Callable[[str], None] = print,
) -> dict[str, Union[AwsCredentials, Exception]]:
    """
    Log into every Azure-enabled profile, one after another.

    A failing profile is recorded and logged; the remaining profiles still run.
    """
    results: dict[str, Union[AwsCredentials, Exception]] = {}
    names = list_profile_names(config_file=cfg.aws.config_file)
    if not names:
        logger.warning("No Azure-enabled profiles found in %s", cfg.aws.config_file)
        return results

    for name in names:
        logger.debug("Run login for profile: %s", name)
        try:
            results[name] = login_profile(name, cfg, prompter=prompter, echo=echo)
        except Exception as e:
            logger.error("Login failed for profile %s: %s", name, e)
            logger.debug("Login failure details (profile=%s)", name, exc_info=True)
            results[name] = e
    return results
