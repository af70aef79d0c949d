from __future__ import annotations

import base64

import pytest

from aws_azure_login.saml import Role, parse_roles_from_saml_response


def _saml_response(*role_values: str, extra: str = "") -> str:
    values = "".join(f"<saml:AttributeValue>{v}</saml:AttributeValue>" for v in role_values)
    xml = f"""<?xml version="1.0" encoding="UTF-8"?>
<samlp:Response xmlns:samlp="urn:oasis:names:tc:SAML:2.0:protocol">
  <Assertion xmlns="urn:oasis:names:tc:SAML:2.0:assertion" xmlns:saml="urn:oasis:names:tc:SAML:2.0:assertion">
    <AttributeStatement>
      <Attribute Name="http://schemas.xmlsoap.org/ws/2005/05/identity/claims/name">
        <AttributeValue>me@contoso.com</AttributeValue>
      </Attribute>
      <Attribute Name="https://aws.amazon.com/SAML/Attributes/Role">{values}</Attribute>
      {extra}
    </AttributeStatement>
  </Assertion>
</samlp:Response>"""
    return base64.b64encode(xml.encode("utf-8")).decode("ascii")


ROLE = "arn:aws:iam::123456789012:role/Admin"
PRINCIPAL = "arn:aws:iam::123456789012:saml-provider/AzureAD"


def test_roles_are_parsed_in_either_order() -> None:
    assertion = _saml_response(
        f"{ROLE},{PRINCIPAL}",
        f"{PRINCIPAL}, arn:aws:iam::123456789012:role/ReadOnly",
    )
    assert parse_roles_from_saml_response(assertion) == [
        Role(role_arn=ROLE, principal_arn=PRINCIPAL),
        Role(role_arn="arn:aws:iam::123456789012:role/ReadOnly", principal_arn=PRINCIPAL),
    ]


def test_no_role_attribute_means_no_roles() -> None:
    assert parse_roles_from_saml_response(_saml_response()) == []


def test_malformed_role_value_is_rejected() -> None:
    with pytest.raises(ValueError):
        parse_roles_from_saml_response(_saml_response(ROLE))
