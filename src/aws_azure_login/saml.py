from __future__ import annotations

import base64
import logging
from dataclasses import dataclass
from xml.etree import ElementTree as ET


logger = logging.getLogger(__name__)

ROLE_ATTRIBUTE = "https://aws.amazon.com/SAML/Attributes/Role"


@dataclass(frozen=True)
class Role:
    role_arn: str
    principal_arn: str


def _split_role_value(value: str) -> Role:
    parts = [p.strip() for p in value.split(",")]
    if len(parts) != 2:
        raise ValueError(f"Unexpected role attribute value: {value!r}")
    # Role / principal claims may come in either order.
    if ":role/" in parts[0]:
        return Role(role_arn=parts[0], principal_arn=parts[1])
    return Role(role_arn=parts[1], principal_arn=parts[0])


def parse_roles_from_saml_response(assertion: str) -> list[Role]:
    """
    Decode the base64 SAMLResponse and return the AWS roles it grants.
    """
    saml_text = base64.b64decode(assertion)
    root = ET.fromstring(saml_text)

    roles: list[Role] = []
    for attribute in root.iterfind(".//{*}Attribute"):
        if attribute.get("Name") != ROLE_ATTRIBUTE:
            continue
        for value in attribute.iterfind("{*}AttributeValue"):
            text = (value.text or "").strip()
            if text:
                roles.append(_split_role_value(text))

    logger.debug("Found roles: %s", roles)
    return roles
