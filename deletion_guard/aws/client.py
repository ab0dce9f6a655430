"""boto3 client construction."""

from __future__ import annotations

import logging
from typing import Any, Optional

import boto3

logger = logging.getLogger(__name__)


def create_boto_client(
    service_name: str,
    region_name: Optional[str] = None,
    profile_name: Optional[str] = None,
) -> Any:
    """Create a boto3 client, optionally from a named profile.

    Args:
        service_name: AWS service name (e.g., "s3")
        region_name: AWS region (default: profile or environment default)
        profile_name: AWS profile name (default: environment credentials)

    Returns:
        boto3 client for the service
    """
    logger.debug("Creating %s client (region=%s, profile=%s)", service_name, region_name, profile_name)
    session = boto3.Session(profile_name=profile_name, region_name=region_name)
    return session.client(service_name)
