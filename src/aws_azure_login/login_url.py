from __future__ import annotations

import base64
import logging
import uuid
import zlib
from datetime import datetime, timezone
from typing import Optional
from urllib.parse import quote
from xml.sax.saxutils import escape, quoteattr


logger = logging.getLogger(__name__)

AZURE_LOGIN_BASE_URL = "https://login.microsoftonline.com"

_AUTHN_REQUEST_TEMPLATE = (
    '<samlp:AuthnRequest xmlns="urn:oasis:names:tc:SAML:2.0:metadata" ID={request_id} Version="2.0" '
    'IssueInstant={issue_instant} IsPassive="false" AssertionConsumerServiceURL={acs_url} '
    'xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol">'
    '<Issuer xmlns="urn:oasis:names:tc:SAML:2.0:assertion">{issuer}</Issuer>'
    '<samlp:NameIDPolicy Format="urn:oasis:names:tc:SAML:1.1:nameid-format:emailAddress"></samlp:NameIDPolicy>'
    "</samlp:AuthnRequest>"
)


def _iso_millis(dt: datetime) -> str:
    # e.g. "2024-05-01T12:30:45.123Z"
    dt = dt.astimezone(timezone.utc)
    return dt.strftime("%Y-%m-%dT%H:%M:%S.") + f"{dt.microsecond // 1000:03d}Z"


def build_authn_request(
    app_id_uri: str,
    assertion_consumer_service_url: str,
    *,
    request_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    rid = request_id or f"id{uuid.uuid4()}"
    issued = now or datetime.now(timezone.utc)
    return _AUTHN_REQUEST_TEMPLATE.format(
        request_id=quoteattr(rid),
        issue_instant=quoteattr(_iso_millis(issued)),
        acs_url=quoteattr(assertion_consumer_service_url),
        issuer=escape(app_id_uri),
    )


def _deflate_raw(data: bytes) -> bytes:
    # Negative wbits: raw DEFLATE stream (no zlib header/checksum), as the SAML redirect binding requires.
    compressor = zlib.compressobj(zlib.Z_DEFAULT_COMPRESSION, zlib.DEFLATED, -15)
    return compressor.compress(data) + compressor.flush()


def build_login_url(
    app_id_uri: str,
    tenant_id: str,
    assertion_consumer_service_url: str,
    *,
    request_id: Optional[str] = None,
    now: Optional[datetime] = None,
) -> str:
    """
    Create the Azure AD SAML login URL for an enterprise application.

    The request is rebuilt from scratch on every call (fresh ID, fresh timestamp).
    """
    saml_request = build_authn_request(
        app_id_uri,
        assertion_consumer_service_url,
        request_id=request_id,
        now=now,
    )
    logger.debug("Generated SAML request: %s", saml_request)

    encoded = base64.b64encode(_deflate_raw(saml_request.encode("utf-8"))).decode("ascii")
    url = f"{AZURE_LOGIN_BASE_URL}/{quote(tenant_id, safe='')}/saml2?SAMLRequest={quote(encoded, safe='')}"
    logger.debug("Created login URL: %s", url)
    return url
