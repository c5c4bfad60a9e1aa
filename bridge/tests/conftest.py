"""
Shared test fixtures for bridge daemon tests.

Provides environment variable fixtures for BridgeSettings configuration tests.
All bridge env vars are cleaned before each test to ensure isolation.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from __future__ import annotations

import pytest

# All BridgeSettings environment variable names, used for cleanup.
_ALL_BRIDGE_ENV_VARS = (
    "VENDOR_BASE_URL",
    "VENDOR_API_KEY",
    "VENDOR_API_SECRET",
    "VENDOR_GROUP_KEY",
    "VENDOR_TIMEOUT_S",
    "SYSTEM_LIST_PAGE_SIZE",
    "COMMAND_QUEUE_URL",
    "ONBOARDING_QUEUE_URL",
    "OFFBOARDING_QUEUE_URL",
    "TELEMETRY_QUEUE_URL",
    "AWS_REGION",
    "SQS_ENDPOINT_URL",
    "SOURCE_ID",
    "EVENT_TYPE_PREFIX",
    "DISPATCH_INTERVAL_S",
    "TELEMETRY_INTERVAL_S",
    "RECEIVE_BATCH_SIZE",
    "RECEIVE_WAIT_S",
    "SOLAR_INCLUDES_DC_METER",
    "HEALTH_PATH",
)

_REQUIRED_ENV = {
    "VENDOR_BASE_URL": "https://openapi.example.com",
    "VENDOR_API_KEY": "api-key-123",
    "VENDOR_API_SECRET": "api-secret-xyz",
    "VENDOR_GROUP_KEY": "group-abc",
    "COMMAND_QUEUE_URL": "https://sqs.ap-southeast-2.amazonaws.com/123/command",
    "ONBOARDING_QUEUE_URL": "https://sqs.ap-southeast-2.amazonaws.com/123/onboarding",
    "OFFBOARDING_QUEUE_URL": "https://sqs.ap-southeast-2.amazonaws.com/123/offboarding",
    "TELEMETRY_QUEUE_URL": "https://sqs.ap-southeast-2.amazonaws.com/123/telemetry",
}


@pytest.fixture(autouse=True)
def _clean_bridge_env(monkeypatch: pytest.MonkeyPatch, tmp_path: str) -> None:
    """Remove all bridge env vars and isolate from .env files before each test.

    Changes working directory to tmp_path so no .env file is accidentally
    loaded by Pydantic BaseSettings.
    """
    for var in _ALL_BRIDGE_ENV_VARS:
        monkeypatch.delenv(var, raising=False)
    monkeypatch.chdir(tmp_path)


@pytest.fixture()
def env_vars_required_only(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set only the required environment variables (no optional ones)."""
    env = dict(_REQUIRED_ENV)
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env


@pytest.fixture()
def env_vars_full(monkeypatch: pytest.MonkeyPatch) -> dict[str, str]:
    """Set all required and optional environment variables for BridgeSettings."""
    env = dict(_REQUIRED_ENV)
    env.update(
        {
            "VENDOR_TIMEOUT_S": "7.5",
            "SYSTEM_LIST_PAGE_SIZE": "50",
            "AWS_REGION": "eu-west-1",
            "SQS_ENDPOINT_URL": "http://localhost:4566",
            "SOURCE_ID": "urn:test:bridge",
            "EVENT_TYPE_PREFIX": "com.example.energy",
            "DISPATCH_INTERVAL_S": "3",
            "TELEMETRY_INTERVAL_S": "60",
            "RECEIVE_BATCH_SIZE": "5",
            "RECEIVE_WAIT_S": "0",
            "SOLAR_INCLUDES_DC_METER": "false",
            "HEALTH_PATH": "/tmp/bridge-health.json",
        }
    )
    for key, value in env.items():
        monkeypatch.setenv(key, value)
    return env
