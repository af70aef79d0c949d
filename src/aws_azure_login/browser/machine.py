from __future__ import annotations

import asyncio
import logging
from typing import Optional, Sequence

from playwright.async_api import ElementHandle

from ..errors import UnrecognizedStateError
from .interceptor import CredentialInterceptor
from .states import LoginContext, State, default_states


logger = logging.getLogger(__name__)

UNRECOGNIZED_STATE_SCREENSHOT = "aws-azure-auth-unrecognized-state.png"


class PageStateMachine:
    """
    Proxy the Azure AD login page through the terminal.

    The screen sequence is not known in advance (MFA, account pickers, "stay signed in?" come and go),
    so instead of a transition table we poll the page for whichever known screen is showing, run its
    handler, and repeat. Each handler races the SAML interceptor: the moment the browser posts the
    assertion to AWS we are done, whatever screen we thought we were on.
    """

    def __init__(
        self,
        ctx: LoginContext,
        interceptor: CredentialInterceptor,
        *,
        states: Optional[Sequence[State]] = None,
        screenshot_path: str = UNRECOGNIZED_STATE_SCREENSHOT,
    ) -> None:
        self._ctx = ctx
        self._session = ctx.session
        self._interceptor = interceptor
        self._states: tuple[State, ...] = tuple(states) if states is not None else default_states(ctx.selectors)
        self._timeouts = ctx.timeouts
        self._screenshot_path = screenshot_path

    async def run(self) -> str:
        """
        Drive the login until the SAML assertion is intercepted; return it (still base64).
        """
        unrecognized_seconds = 0.0

        while True:
            if self._interceptor.done:
                return self._interceptor.assertion()

            state, element = await self._probe()
            if state is not None and element is not None:
                logger.debug("Found state: %s", state.name)
                if await self._run_handler(state, element):
                    logger.debug("SAML response intercepted during state: %s", state.name)
                    return self._interceptor.assertion()
                logger.debug("Finished state: %s", state.name)
                unrecognized_seconds = 0.0
                continue

            logger.debug("State not recognized!")
            if await self._interceptor.wait_for(self._timeouts.poll_interval_seconds):
                continue

            unrecognized_seconds += self._timeouts.poll_interval_seconds
            if unrecognized_seconds > self._timeouts.max_unrecognized_seconds:
                await self._fail_unrecognized()

    async def _probe(self) -> tuple[Optional[State], Optional[ElementHandle]]:
        for state in self._states:
            try:
                element = await state.matches(self._session)
            except Exception as e:
                # Probing mid-navigation throws ("execution context was destroyed"); next pass will see the new page.
                logger.debug('Error when probing state "%s": %s. Continuing...', state.name, e)
                continue
            if element is not None:
                return state, element
        return None, None

    async def _run_handler(self, state: State, element: ElementHandle) -> bool:
        """
        Run one handler against the interceptor. Returns True if the interceptor won.
        """
        handler_task = asyncio.ensure_future(state.handler(self._ctx, element))
        signal_task = asyncio.ensure_future(self._interceptor.wait())
        try:
            await asyncio.wait({handler_task, signal_task}, return_when=asyncio.FIRST_COMPLETED)
        except asyncio.CancelledError:
            handler_task.cancel()
            raise
        finally:
            signal_task.cancel()

        if self._interceptor.done:
            await self._abandon(state, handler_task)
            return True

        handler_task.result()
        return False

    async def _abandon(self, state: State, task: asyncio.Future) -> None:
        if not task.done():
            task.cancel()
        # The session is already released, so whatever the handler was doing ends in an error; drain it.
        (outcome,) = await asyncio.gather(task, return_exceptions=True)
        if isinstance(outcome, BaseException) and not isinstance(outcome, asyncio.CancelledError):
            logger.debug("Abandoned state %s ended with %r", state.name, outcome)

    async def _fail_unrecognized(self) -> None:
        path = self._screenshot_path
        try:
            await self._session.screenshot(path)
        except Exception:
            logger.warning("Failed to save unrecognized-state screenshot to %s", path, exc_info=True)
        raise UnrecognizedStateError(path)
