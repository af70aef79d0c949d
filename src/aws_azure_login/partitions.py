from __future__ import annotations

from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class PartitionInfo:
    partition: str
    display_name: str
    saml_endpoint: str
    region_prefix: str = ""
    default_region: str = "us-east-1"


# The SAML endpoint is where Azure AD would POST the assertion; it is intercepted, never reached.
KNOWN_PARTITIONS: Mapping[str, PartitionInfo] = {
    "aws": PartitionInfo(
        partition="aws",
        display_name="AWS Standard",
        saml_endpoint="https://signin.aws.amazon.com/saml",
    ),
    "aws-us-gov": PartitionInfo(
        partition="aws-us-gov",
        display_name="AWS GovCloud (US)",
        saml_endpoint="https://signin.amazonaws-us-gov.com/saml",
        region_prefix="us-gov",
        default_region="us-gov-west-1",
    ),
    "aws-cn": PartitionInfo(
        partition="aws-cn",
        display_name="AWS China",
        saml_endpoint="https://signin.amazonaws.cn/saml",
        region_prefix="cn-",
        default_region="cn-north-1",
    ),
}


def partition_for_region(region: Optional[str]) -> PartitionInfo:
    r = (region or "").strip().lower()
    for info in KNOWN_PARTITIONS.values():
        if info.region_prefix and r.startswith(info.region_prefix):
            return info
    return KNOWN_PARTITIONS["aws"]


def endpoint_for_region(region: Optional[str]) -> str:
    return partition_for_region(region).saml_endpoint
