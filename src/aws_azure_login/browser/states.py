from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Awaitable, Callable, Optional

from playwright.async_api import ElementHandle

from ..config import LoginTimeouts
from ..errors import PageParseError, UserFacingFailure
from ..prompts import Prompter, Question
from .selectors import LoginSelectors
from .session import BrowserSession


logger = logging.getLogger(__name__)

# Enough to empty anything Azure AD pre-fills (e.g. a remembered username).
CLEAR_INPUT_KEYPRESSES = 100


class Screen(str, Enum):
    """
    Every Azure AD screen the login loop knows how to get past.
    """

    USERNAME = "username input"
    ACCOUNT_SELECTION = "account selection"
    PASSWORDLESS = "passwordless"
    PASSWORD = "password input"
    TFA_INSTRUCTIONS = "TFA instructions"
    TFA_FAILED = "TFA failed"
    TFA_CODE = "TFA code input"
    REMEMBER_ME = "Remember me"
    SERVICE_EXCEPTION = "Service exception"


@dataclass
class LoginContext:
    """
    Everything a screen handler may use. One instance per login attempt.

    Handlers may clear `default_username`/`default_password` after Azure AD rejects them, so the
    next visit to that screen prompts instead of resubmitting a known-bad value.
    """

    session: BrowserSession
    prompter: Prompter
    no_prompt: bool = False
    default_username: str = ""
    default_password: str = field(default="", repr=False)
    remember_me: bool = False
    selectors: LoginSelectors = field(default_factory=LoginSelectors)
    timeouts: LoginTimeouts = field(default_factory=LoginTimeouts)
    echo: Callable[[str], None] = print


Handler = Callable[[LoginContext, ElementHandle], Awaitable[None]]


@dataclass(frozen=True)
class State:
    screen: Screen
    selector: str
    handler: Handler

    @property
    def name(self) -> str:
        return self.screen.value

    async def matches(self, session: BrowserSession) -> Optional[ElementHandle]:
        return await session.query(self.selector)


async def first_completed(*aws: Awaitable[None]) -> None:
    """
    Run the awaitables concurrently and return as soon as one settles; cancel the rest.

    The first to settle decides the outcome, failures included.
    """
    tasks = [asyncio.ensure_future(a) for a in aws]
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
    finally:
        for t in tasks:
            if not t.done():
                t.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)

    errors = [t.exception() for t in done if not t.cancelled() and t.exception() is not None]
    if len(errors) == len(done) and errors:
        raise errors[0]


async def _wait_for_transition(ctx: LoginContext, *, input_selector: str, done_selector: str) -> None:
    """
    Wait until Azure AD is done with the form we just submitted: either the input goes away, or
    it gets flagged with an error / moved off screen (the next loop pass relays the error).
    """
    session = ctx.session
    timeout_ms = ctx.timeouts.transition_ms

    async def _flagged() -> None:
        await session.wait_for(done_selector, state="attached", timeout_ms=timeout_ms)

    async def _gone() -> None:
        await session.sleep(ctx.timeouts.transition_settle_seconds)
        await session.wait_for(input_selector, state="hidden", timeout_ms=timeout_ms)

    await first_completed(_flagged(), _gone())


async def _relay_error_banner(ctx: LoginContext) -> bool:
    message = await ctx.session.text_of(ctx.selectors.error_banner)
    if message is None:
        return False
    logger.debug("Found error message. Displaying")
    ctx.echo(message)
    return True


async def _clear_and_type(ctx: LoginContext, selector: str, value: str) -> None:
    session = ctx.session
    await session.focus(selector)
    logger.debug("Clearing input")
    await session.press("Backspace", times=CLEAR_INPUT_KEYPRESSES)
    await session.type(value)


async def handle_username(ctx: LoginContext, element: ElementHandle) -> None:
    s = ctx.selectors
    session = ctx.session

    if await _relay_error_banner(ctx):
        ctx.default_username = ""

    if ctx.no_prompt and ctx.default_username:
        logger.debug("Not prompting user for username")
        username = ctx.default_username
    else:
        logger.debug("Prompting user for username")
        answers = await ctx.prompter.ask(
            [Question(name="username", message="Username:", default=ctx.default_username or None)]
        )
        username = answers["username"]

    logger.debug("Waiting for username input to be visible")
    await session.wait_for(s.username_input, state="visible", timeout_ms=ctx.timeouts.transition_ms)
    await _clear_and_type(ctx, s.username_input, username)
    await session.sleep(ctx.timeouts.short_pause_seconds)

    logger.debug("Waiting for submit button to be visible")
    await session.wait_for(s.submit_button, state="visible", timeout_ms=ctx.timeouts.transition_ms)
    logger.debug("Submitting form")
    await session.click(s.submit_button)
    await session.sleep(ctx.timeouts.short_pause_seconds)

    logger.debug("Waiting for submission to finish")
    await _wait_for_transition(ctx, input_selector=s.username_input, done_selector=s.username_done)


async def handle_account_selection(ctx: LoginContext, element: ElementHandle) -> None:
    s = ctx.selectors
    session = ctx.session
    logger.debug("Multiple accounts associated with username.")

    accounts: list[tuple[str, str]] = []
    for selector in (s.account_aad_title, s.account_msa_title):
        text = ((await session.text_of(selector)) or "").strip()
        if text:
            accounts.append((text, selector))

    if not accounts:
        raise PageParseError("Unable to parse page: no accounts found on account selection screen.")

    if len(accounts) == 1:
        chosen = accounts[0]
    else:
        logger.debug("Asking user to choose account")
        ctx.echo(
            "It looks like this Username is used with more than one account from Microsoft. "
            "Which one do you want to use?"
        )
        messages = tuple(message for message, _ in accounts)
        answers = await ctx.prompter.ask(
            [Question(name="account", message="Account:", kind="list", choices=messages, default=messages[0])]
        )
        chosen = next((a for a in accounts if a[0] == answers["account"]), accounts[0])

    logger.debug("Proceeding with account %s", chosen[1])
    await session.click(chosen[1])
    await session.sleep(ctx.timeouts.short_pause_seconds)


async def handle_passwordless(ctx: LoginContext, element: ElementHandle) -> None:
    s = ctx.selectors
    session = ctx.session

    logger.debug("Sending notification")
    await session.click(s.passwordless_state)
    logger.debug("Waiting for auth code")
    await session.wait_for(s.passwordless_display_sign, state="visible", timeout_ms=ctx.timeouts.transition_ms)

    message = await session.text_of(s.passwordless_description)
    if message:
        ctx.echo(message)
    code = await session.text_of(s.passwordless_display_sign)
    if code:
        ctx.echo(code)

    # The operator approves on their phone; the number disappears once they have.
    logger.debug("Waiting for response")
    await session.wait_for(s.passwordless_display_sign, state="hidden", timeout_ms=ctx.timeouts.transition_ms)


async def handle_password(ctx: LoginContext, element: ElementHandle) -> None:
    s = ctx.selectors
    session = ctx.session

    if await _relay_error_banner(ctx):
        # Wrong password: drop the configured one and let the user type it.
        ctx.default_password = ""

    if ctx.no_prompt and ctx.default_password:
        logger.debug("Not prompting user for password")
        password = ctx.default_password
    else:
        logger.debug("Prompting user for password")
        answers = await ctx.prompter.ask([Question(name="password", message="Password:", kind="password")])
        password = answers["password"]

    logger.debug("Focusing on password input")
    await session.focus(s.password_input)
    logger.debug("Typing password")
    await session.type(password)

    logger.debug("Submitting form")
    await session.click(s.password_submit)
    await session.sleep(ctx.timeouts.short_pause_seconds)

    logger.debug("Waiting for submission to finish")
    await _wait_for_transition(ctx, input_selector=s.password_input, done_selector=s.password_done)


async def handle_tfa_instructions(ctx: LoginContext, element: ElementHandle) -> None:
    s = ctx.selectors
    session = ctx.session

    description = await session.text_content(element)
    logger.debug("Checking if authentication code is displayed")
    if s.tfa_number_hint in description:
        code = await session.text_of(s.tfa_display_sign)
        if code:
            ctx.echo(code)

    logger.debug("Waiting for response")
    await session.wait_for(s.tfa_instructions_state, state="hidden", timeout_ms=ctx.timeouts.transition_ms)


async def handle_hard_failure(ctx: LoginContext, element: ElementHandle) -> None:
    message = await ctx.session.text_content(element)
    raise UserFacingFailure(message)


async def handle_tfa_code(ctx: LoginContext, element: ElementHandle) -> None:
    s = ctx.selectors
    session = ctx.session

    if not await _relay_error_banner(ctx):
        description = await session.text_of(s.tfa_code_description)
        if description:
            ctx.echo(description)

    answers = await ctx.prompter.ask([Question(name="verificationCode", message="Verification Code:")])
    code = answers["verificationCode"]

    logger.debug("Typing verification code")
    await _clear_and_type(ctx, s.tfa_code_input, code)

    logger.debug("Submitting form")
    await session.click(s.submit_button)

    logger.debug("Waiting for submission to finish")
    await _wait_for_transition(ctx, input_selector=s.tfa_code_input, done_selector=s.tfa_code_done)


async def handle_remember_me(ctx: LoginContext, element: ElementHandle) -> None:
    s = ctx.selectors
    if ctx.remember_me:
        logger.debug("Clicking remember me button")
        await ctx.session.click(s.remember_me_accept)
    else:
        logger.debug("Clicking don't remember button")
        await ctx.session.click(s.remember_me_decline)
    await ctx.session.sleep(ctx.timeouts.short_pause_seconds)


def default_states(selectors: Optional[LoginSelectors] = None) -> tuple[State, ...]:
    """
    The screens in the order they are probed. Earlier entries win when several match at once.
    """
    s = selectors or LoginSelectors()
    return (
        State(Screen.USERNAME, s.username_state, handle_username),
        State(Screen.ACCOUNT_SELECTION, s.account_selection_state, handle_account_selection),
        State(Screen.PASSWORDLESS, s.passwordless_state, handle_passwordless),
        State(Screen.PASSWORD, s.password_state, handle_password),
        State(Screen.TFA_INSTRUCTIONS, s.tfa_instructions_state, handle_tfa_instructions),
        State(Screen.TFA_FAILED, s.tfa_failed_state, handle_hard_failure),
        State(Screen.TFA_CODE, s.tfa_code_state, handle_tfa_code),
        State(Screen.REMEMBER_ME, s.remember_me_state, handle_remember_me),
        State(Screen.SERVICE_EXCEPTION, s.service_exception_state, handle_hard_failure),
    )
