from __future__ import annotations

import asyncio
import logging
from typing import Optional
from urllib.parse import parse_qs, urlsplit, urlunsplit

from playwright.async_api import Error as PlaywrightError
from playwright.async_api import Route

from ..errors import MissingAssertionError
from .session import BrowserSession


logger = logging.getLogger(__name__)

SAML_RESPONSE_FIELD = "SAMLResponse"


def _normalize_url(url: str) -> str:
    parts = urlsplit(url)
    path = parts.path.rstrip("/") or "/"
    return urlunsplit((parts.scheme.lower(), parts.netloc.lower(), path, parts.query, ""))


def extract_assertion(body: Optional[str]) -> str:
    """
    Pull the SAMLResponse value out of a form-encoded POST body.

    The field must be present exactly once and non-empty.
    """
    values = parse_qs(body or "", keep_blank_values=True).get(SAML_RESPONSE_FIELD) or []
    if len(values) > 1:
        raise MissingAssertionError(f"SAML response must be a single value (got {len(values)}).")
    if not values or not values[0]:
        raise MissingAssertionError("SAML response not found in the intercepted request.")
    return values[0]


class CredentialInterceptor:
    """
    Stops the browser at the AWS SAML endpoint and keeps the POST body for us.

    Only `endpoint` counts: an assertion posted to another partition's endpoint is not ours.
    """

    def __init__(self, endpoint: str) -> None:
        self.endpoint = endpoint
        self._target = _normalize_url(endpoint)
        self._event = asyncio.Event()
        self._body: Optional[str] = None
        self._captured = False
        self._session: Optional[BrowserSession] = None

    @property
    def done(self) -> bool:
        return self._event.is_set()

    @property
    def body(self) -> Optional[str]:
        return self._body

    def matches(self, url: str) -> bool:
        return _normalize_url(url) == self._target

    async def attach(self, session: BrowserSession) -> None:
        self._session = session
        session.on_request(self.handle_route)
        logger.debug("Enabling request interception (endpoint=%s)", self.endpoint)
        await session.set_request_interception(True)

    async def wait(self) -> None:
        await self._event.wait()

    async def wait_for(self, timeout_seconds: float) -> bool:
        """
        Wait up to `timeout_seconds` for the SAML request; return whether it arrived.
        """
        try:
            await asyncio.wait_for(self._event.wait(), timeout=timeout_seconds)
        except asyncio.TimeoutError:
            return False
        return True

    def assertion(self) -> str:
        if not self.done:
            raise MissingAssertionError("SAML response not found (the login did not reach AWS).")
        return extract_assertion(self._body)

    async def handle_route(self, route: Route) -> None:
        request = route.request
        url = request.url
        if not self.matches(url):
            try:
                await route.continue_()
            except PlaywrightError:
                if not self.done:
                    raise
                # The browser is being torn down behind us; late requests have nowhere to go.
                logger.debug("Could not continue request after capture: %s", url, exc_info=True)
            return

        if self._captured:
            logger.debug("Ignoring repeated SAML request to %s", url)
            try:
                await route.fulfill(status=200, content_type="text/plain", body="")
            except PlaywrightError:
                logger.debug("Could not short-circuit repeated SAML request.", exc_info=True)
            return

        self._captured = True
        self._body = request.post_data
        try:
            await route.fulfill(status=200, content_type="text/plain", body="")
        finally:
            self._event.set()
            if self._session is not None:
                self._session.release()
            logger.debug("Received SAML response; browser session released")
