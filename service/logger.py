"""Shared structured logger for the dashboard service."""

import logging

from aws_lambda_powertools.logging import Logger

logger: Logger = Logger(service="xero-dashboard")

for name in ["boto", "urllib3", "s3transfer", "boto3", "botocore"]:
    logging.getLogger(name).setLevel(logging.CRITICAL)
