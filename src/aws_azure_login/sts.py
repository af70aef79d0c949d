from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Any, Optional

import boto3
from botocore.config import Config as BotoConfig

from .errors import CLIError
from .partitions import partition_for_region
from .saml import Role


logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class AwsCredentials:
    access_key_id: str
    secret_access_key: str
    session_token: str
    expiration: Optional[datetime] = None

    def expiration_iso(self) -> str:
        if self.expiration is None:
            return ""
        return self.expiration.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")

    def to_credential_process(self) -> dict[str, Any]:
        """
        Shape expected by the AWS CLI/SDK `credential_process` setting.
        """
        out: dict[str, Any] = {
            "Version": 1,
            "AccessKeyId": self.access_key_id,
            "SecretAccessKey": self.secret_access_key,
            "SessionToken": self.session_token,
        }
        if self.expiration is not None:
            out["Expiration"] = self.expiration_iso()
        return out

    def to_env_exports(self) -> str:
        lines = [
            f"export AWS_ACCESS_KEY_ID={self.access_key_id}",
            f"export AWS_SECRET_ACCESS_KEY={self.secret_access_key}",
            f"export AWS_SESSION_TOKEN={self.session_token}",
        ]
        if self.expiration is not None:
            lines.append(f"export AWS_CREDENTIAL_EXPIRATION={self.expiration_iso()}")
        return "\n".join(lines)


def create_sts_client(region: str = "", *, proxy: str = "", no_verify_ssl: bool = False) -> Any:
    region_name = region or partition_for_region(region).default_region
    kwargs: dict[str, Any] = {"region_name": region_name}
    if proxy:
        kwargs["config"] = BotoConfig(proxies={"https": proxy})
    if no_verify_ssl:
        kwargs["verify"] = False
    return boto3.client("sts", **kwargs)


def assume_role(
    assertion: str,
    role: Role,
    duration_hours: float,
    *,
    region: str = "",
    proxy: str = "",
    no_verify_ssl: bool = False,
    client: Any = None,
) -> AwsCredentials:
    logger.info("Assuming role %s in region %s...", role.role_arn, region or "(default)")
    sts = client or create_sts_client(region, proxy=proxy, no_verify_ssl=no_verify_ssl)
    res = sts.assume_role_with_saml(
        RoleArn=role.role_arn,
        PrincipalArn=role.principal_arn,
        SAMLAssertion=assertion,
        DurationSeconds=round(duration_hours * 60 * 60),
    )

    creds = res.get("Credentials")
    if not creds:
        raise CLIError("Unable to get security credentials from AWS")

    return AwsCredentials(
        access_key_id=creds.get("AccessKeyId", ""),
        secret_access_key=creds.get("SecretAccessKey", ""),
        session_token=creds.get("SessionToken", ""),
        expiration=creds.get("Expiration"),
    )
