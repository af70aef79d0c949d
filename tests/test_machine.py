from __future__ import annotations

import asyncio
import threading
import time
from pathlib import Path

import pytest

from aws_azure_login.browser.interceptor import CredentialInterceptor
from aws_azure_login.browser.machine import PageStateMachine
from aws_azure_login.browser.selectors import LoginSelectors
from aws_azure_login.browser.states import Screen, State, handle_password
from aws_azure_login.errors import (
    MissingAssertionError,
    SessionClosedError,
    UnrecognizedStateError,
    UserFacingFailure,
)
from aws_azure_login.prompts import Prompter

from fakes import AWS_ENDPOINT, FakeElement, FakePage, ScriptedPrompter, fire_saml, make_context


def _recording_state(screen: Screen, selector: str, calls: list[Screen], interceptor=None, body="SAMLResponse=QUJD"):
    async def handler(ctx, element) -> None:
        calls.append(screen)
        if interceptor is not None:
            await fire_saml(interceptor, body)

    return State(screen, selector, handler)


async def _attached(page: FakePage, **ctx_kwargs):
    ctx = make_context(page, **ctx_kwargs)
    interceptor = CredentialInterceptor(AWS_ENDPOINT)
    await interceptor.attach(ctx.session)
    return ctx, interceptor


def _machine(ctx, interceptor, tmp_path: Path, states=None) -> PageStateMachine:
    return PageStateMachine(ctx, interceptor, states=states, screenshot_path=str(tmp_path / "unrecognized.png"))


def test_first_matching_state_in_list_order_wins(tmp_path: Path) -> None:
    async def scenario() -> None:
        calls: list[Screen] = []
        page = FakePage({"#username": FakeElement(), "#password": FakeElement()})
        ctx, interceptor = await _attached(page)
        states = [
            _recording_state(Screen.USERNAME, "#username", calls, interceptor),
            _recording_state(Screen.PASSWORD, "#password", calls, interceptor),
        ]
        machine = _machine(ctx, interceptor, tmp_path, states)

        assert await machine.run() == "QUJD"
        assert calls == [Screen.USERNAME]

    asyncio.run(scenario())


def test_probe_error_counts_as_no_match_and_later_states_are_still_checked(tmp_path: Path) -> None:
    async def scenario() -> None:
        calls: list[Screen] = []
        page = FakePage({"#username": FakeElement(), "#password": FakeElement()})
        page.query_errors.add("#username")
        ctx, interceptor = await _attached(page)
        states = [
            _recording_state(Screen.USERNAME, "#username", calls, interceptor),
            _recording_state(Screen.PASSWORD, "#password", calls, interceptor),
        ]
        machine = _machine(ctx, interceptor, tmp_path, states)

        assert await machine.run() == "QUJD"
        assert calls == [Screen.PASSWORD]

    asyncio.run(scenario())


def test_unrecognized_page_fails_after_ceiling_with_one_screenshot(tmp_path: Path) -> None:
    async def scenario() -> None:
        page = FakePage()
        ctx, interceptor = await _attached(page)
        machine = _machine(ctx, interceptor, tmp_path)

        with pytest.raises(UnrecognizedStateError) as exc_info:
            await machine.run()

        expected = str(tmp_path / "unrecognized.png")
        assert page.screenshots == [expected]
        assert exc_info.value.screenshot_path == expected
        assert "Unable to recognize page state!" in str(exc_info.value)
        assert "--mode=gui or --mode=debug" in str(exc_info.value)

    asyncio.run(scenario())


def test_screenshot_failure_still_raises_unrecognized(tmp_path: Path) -> None:
    async def scenario() -> None:
        page = FakePage()

        async def broken_screenshot(path: str) -> None:
            raise RuntimeError("target closed")

        page.screenshot = broken_screenshot  # type: ignore[method-assign]
        ctx, interceptor = await _attached(page)
        machine = _machine(ctx, interceptor, tmp_path)

        with pytest.raises(UnrecognizedStateError):
            await machine.run()

    asyncio.run(scenario())


def test_interception_mid_handler_ends_login_without_running_more_handlers(tmp_path: Path) -> None:
    async def scenario() -> None:
        s = LoginSelectors()
        calls: list[Screen] = []
        page = FakePage(
            {
                s.password_state: FakeElement(),
                s.password_input: FakeElement(),
                "#after": FakeElement(),
            }
        )
        # Azure AD never moves on from the submit click; the assertion arrives meanwhile.
        page.hang_on_click.add(s.password_submit)
        ctx, interceptor = await _attached(page, no_prompt=True, default_password="pw")

        states = [
            State(Screen.PASSWORD, s.password_state, handle_password),
            _recording_state(Screen.REMEMBER_ME, "#after", calls),
        ]
        machine = _machine(ctx, interceptor, tmp_path, states)

        loop = asyncio.get_running_loop()
        loop.call_later(0.02, lambda: asyncio.ensure_future(fire_saml(interceptor)))

        assert await machine.run() == "QUJD"
        assert calls == []
        assert ("type", "pw") in page.actions
        assert ctx.session.closed

        with pytest.raises(SessionClosedError):
            await ctx.session.click("#after")
        # Closing the released session is still fine (and idempotent).
        await ctx.session.close()
        await ctx.session.close()

    asyncio.run(scenario())


def test_handler_failure_propagates(tmp_path: Path) -> None:
    async def scenario() -> None:
        s = LoginSelectors()
        message = "AADSTS50058: A silent sign-in request was sent but no user is signed in."
        page = FakePage({s.service_exception_state: FakeElement(message)})
        ctx, interceptor = await _attached(page)
        machine = _machine(ctx, interceptor, tmp_path)

        with pytest.raises(UserFacingFailure) as exc_info:
            await machine.run()
        assert str(exc_info.value) == message

    asyncio.run(scenario())


def test_intercepted_request_without_saml_response_fails(tmp_path: Path) -> None:
    async def scenario() -> None:
        calls: list[Screen] = []
        page = FakePage({"#username": FakeElement()})
        ctx, interceptor = await _attached(page)
        states = [_recording_state(Screen.USERNAME, "#username", calls, interceptor, body="RelayState=abc")]
        machine = _machine(ctx, interceptor, tmp_path, states)

        with pytest.raises(MissingAssertionError):
            await machine.run()

    asyncio.run(scenario())


def test_intercepted_request_with_repeated_saml_response_fails(tmp_path: Path) -> None:
    async def scenario() -> None:
        calls: list[Screen] = []
        page = FakePage({"#username": FakeElement()})
        ctx, interceptor = await _attached(page)
        states = [
            _recording_state(
                Screen.USERNAME, "#username", calls, interceptor, body="SAMLResponse=QUJD&SAMLResponse=RUZH"
            )
        ]
        machine = _machine(ctx, interceptor, tmp_path, states)

        with pytest.raises(MissingAssertionError):
            await machine.run()

    asyncio.run(scenario())


def test_already_intercepted_returns_without_probing(tmp_path: Path) -> None:
    async def scenario() -> None:
        page = FakePage({"#username": FakeElement()})
        ctx, interceptor = await _attached(page)
        machine = _machine(ctx, interceptor, tmp_path)
        await fire_saml(interceptor, "SAMLResponse=WFla")

        assert await machine.run() == "WFla"
        assert page.queries == []

    asyncio.run(scenario())


def test_interception_while_no_state_is_showing(tmp_path: Path) -> None:
    async def scenario() -> None:
        page = FakePage()
        ctx, interceptor = await _attached(page)
        machine = _machine(ctx, interceptor, tmp_path)
        loop = asyncio.get_running_loop()
        loop.call_later(0.015, lambda: asyncio.ensure_future(fire_saml(interceptor)))

        assert await machine.run() == "QUJD"
        assert page.screenshots == []

    asyncio.run(scenario())


def test_hard_failure_wins_over_later_matching_states(tmp_path: Path) -> None:
    async def scenario() -> None:
        s = LoginSelectors()
        message = "We didn't hear from you. Your sign-in request timed out."
        page = FakePage(
            {
                s.tfa_failed_state: FakeElement(message),
                s.tfa_code_state: FakeElement(),
                s.tfa_code_input: FakeElement(),
                s.remember_me_state: FakeElement(),
            }
        )
        prompter = ScriptedPrompter({"verificationCode": "123456"})
        ctx, interceptor = await _attached(page, prompter=prompter)
        machine = _machine(ctx, interceptor, tmp_path)

        with pytest.raises(UserFacingFailure) as exc_info:
            await machine.run()

        assert str(exc_info.value) == message
        assert prompter.asked == []
        assert page.actions == []

    asyncio.run(scenario())


def test_login_returns_while_operator_prompt_is_still_open(tmp_path: Path) -> None:
    s = LoginSelectors()
    answered = threading.Event()
    asked = threading.Event()

    def operator_never_answers(prompt: str) -> str:
        asked.set()
        answered.wait(5)
        return "000000"

    async def scenario() -> str:
        page = FakePage({s.tfa_code_state: FakeElement(), s.tfa_code_input: FakeElement()})
        prompter = Prompter(input_fn=operator_never_answers, output=lambda _m: None)
        ctx, interceptor = await _attached(page, prompter=prompter)
        machine = _machine(ctx, interceptor, tmp_path)

        loop = asyncio.get_running_loop()
        loop.call_later(0.05, lambda: asyncio.ensure_future(fire_saml(interceptor)))
        return await machine.run()

    started = time.monotonic()
    try:
        assert asyncio.run(scenario()) == "QUJD"
        elapsed = time.monotonic() - started
    finally:
        answered.set()

    assert asked.is_set()
    assert elapsed < 2
