from __future__ import annotations

from functools import lru_cache

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class KeyUploadSettings(BaseSettings):
    """Configuration for the verification and key upload engine.

    All values can be overridden via environment variables. Prefix: ``KEYUPLOAD_``.
    """

    # Verification server
    verification_code_url: str = Field(default="https://apiserver.example.com/api/verify")
    verification_cert_url: str = Field(default="https://apiserver.example.com/api/certificate")
    user_report_url: str = Field(default="https://apiserver.example.com/api/user-report")
    verification_api_key: str = ""

    # Key server
    key_upload_url: str = Field(default="https://exposure.example.com/v1/publish")
    health_authority_id: str = "com.example.exposurenotification"

    # The servers hold every response for at least 5s.
    rpc_timeout_seconds: float = Field(default=30.0, gt=0)
    padding_target_bytes: int = Field(default=5000, gt=0)

    background_workers: int = 4
    lightweight_workers: int = 2

    # Connectivity probe
    connectivity_probe_host: str = "dns.google"
    connectivity_probe_port: int = 443
    connectivity_probe_timeout_seconds: float = 3.0

    # Cover traffic
    cover_traffic_interval_hours: float = 4.0
    cover_traffic_execution_probability: float = Field(default=1.0 / 12.0, ge=0, le=1)
    cover_traffic_request_code_probability: float = Field(default=1.0 / 6.0, ge=0, le=1)
    cover_traffic_short_delay_probability: float = Field(default=4.0 / 5.0, ge=0, le=1)
    cover_traffic_max_short_delay_seconds: float = 10.0
    cover_traffic_max_long_delay_seconds: int = 25 * 60 * 60
    cover_traffic_long_delay_threshold_seconds: int = 24 * 60 * 60
    cover_traffic_fake_key_count: int = 14
    exposure_api_enabled: bool = Field(
        default=True,
        description="Whether the exposure notification API is enabled on this device. "
        "Used by the command line runner, which has no exposure API to ask.",
    )

    # Logging
    log_level: str = "INFO"
    log_json_output: bool = True

    model_config = SettingsConfigDict(env_prefix="KEYUPLOAD_", env_file=".env", extra="ignore")


@lru_cache(maxsize=1)
def get_settings() -> KeyUploadSettings:
    return KeyUploadSettings()
