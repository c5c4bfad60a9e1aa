"""
Bridge daemon configuration loaded from environment variables.

Uses Pydantic BaseSettings for automatic env var loading and validation.
All configuration values come from environment variables or .env files;
no hardcoded queue URLs, vendor endpoints, or credentials.

CHANGELOG:
- 2026-10-19: Initial creation

TODO:
- None
"""

from pydantic import field_validator
from pydantic_settings import BaseSettings


class BridgeSettings(BaseSettings):
    """Bridge daemon configuration.

    All values are loaded from environment variables. Required variables
    must be set; optional variables have sensible defaults.

    Attributes:
        vendor_base_url: Vendor open API base URL (must be HTTPS).
        vendor_api_key: Vendor API key sent with every request.
        vendor_api_secret: Secret used to sign vendor requests.
        vendor_group_key: Control group the bridge enrols devices into.
        vendor_timeout_s: Per-request timeout for vendor calls.
        system_list_page_size: Page size when listing vendor systems.
        command_queue_url: Inbound queue carrying control commands.
        onboarding_queue_url: Inbound queue carrying onboarding requests.
        offboarding_queue_url: Inbound queue carrying offboarding requests.
        telemetry_queue_url: Outbound queue for responses and telemetry.
        aws_region: Region of the queue service.
        sqs_endpoint_url: Optional queue endpoint override (e.g. localstack).
        source_id: Envelope ``source`` for every emitted event.
        event_type_prefix: Prefix for emitted event types.
        dispatch_interval_s: Seconds between inbound queue polls.
        telemetry_interval_s: Seconds between telemetry publications.
        receive_batch_size: Max messages pulled per queue per tick.
        receive_wait_s: Long-poll wait per receive call.
        solar_includes_dc_meter: Add the DC-side meter power to solar power.
        health_path: JSON health file path.
    """

    vendor_base_url: str
    vendor_api_key: str
    vendor_api_secret: str
    vendor_group_key: str
    vendor_timeout_s: float = 15.0
    system_list_page_size: int = 100

    command_queue_url: str
    onboarding_queue_url: str
    offboarding_queue_url: str
    telemetry_queue_url: str
    aws_region: str = "ap-southeast-2"
    sqs_endpoint_url: str | None = None

    source_id: str = "urn:com.neovolt.evergen.device"
    event_type_prefix: str = "com.evergen.energy"

    dispatch_interval_s: int = 10
    telemetry_interval_s: int = 300
    receive_batch_size: int = 10
    receive_wait_s: int = 5

    solar_includes_dc_meter: bool = True
    health_path: str = "/data/health.json"

    @field_validator("vendor_base_url")
    @classmethod
    def vendor_base_url_must_be_https(cls, v: str) -> str:
        """Validate that the vendor base URL uses HTTPS."""
        if not v.lower().startswith("https://"):
            raise ValueError(f"VENDOR_BASE_URL must use HTTPS (got: '{v[:20]}...')")
        return v.rstrip("/")

    @field_validator("vendor_timeout_s")
    @classmethod
    def vendor_timeout_must_be_positive(cls, v: float) -> float:
        """Validate the vendor request timeout is positive."""
        if v <= 0:
            raise ValueError("VENDOR_TIMEOUT_S must be > 0")
        return v

    @field_validator("system_list_page_size")
    @classmethod
    def page_size_must_be_valid(cls, v: int) -> int:
        """Validate page size is between 1 and 500."""
        if v < 1 or v > 500:
            raise ValueError("SYSTEM_LIST_PAGE_SIZE must be >= 1 and <= 500")
        return v

    @field_validator("dispatch_interval_s")
    @classmethod
    def dispatch_interval_must_be_positive(cls, v: int) -> int:
        """Validate the dispatch tick is at least one second."""
        if v < 1:
            raise ValueError("DISPATCH_INTERVAL_S must be >= 1")
        return v

    @field_validator("telemetry_interval_s")
    @classmethod
    def telemetry_interval_respects_vendor_rate(cls, v: int) -> int:
        """Validate telemetry interval is at least 10 seconds.

        The vendor refreshes fast data every 10 seconds.
        """
        if v < 10:
            raise ValueError("TELEMETRY_INTERVAL_S must be >= 10")
        return v

    @field_validator("receive_batch_size")
    @classmethod
    def receive_batch_size_must_be_valid(cls, v: int) -> int:
        """Validate batch size is between 1 and 10 (queue service limit)."""
        if v < 1 or v > 10:
            raise ValueError("RECEIVE_BATCH_SIZE must be between 1 and 10")
        return v

    @field_validator("receive_wait_s")
    @classmethod
    def receive_wait_must_be_valid(cls, v: int) -> int:
        """Validate long-poll wait is between 0 and 20 seconds."""
        if v < 0 or v > 20:
            raise ValueError("RECEIVE_WAIT_S must be between 0 and 20")
        return v

    model_config = {"env_file": ".env", "env_file_encoding": "utf-8"}
