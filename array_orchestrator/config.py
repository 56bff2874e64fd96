"""
Configuration for the array orchestrator.

Reads from environment variables with sensible defaults.
"""

import os
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application settings loaded from environment."""

    # FlashArray REST
    verify_ssl: bool = os.getenv("ARRAY_ORCH_VERIFY_SSL", "false").lower() == "true"
    rest_version: str = os.getenv("ARRAY_ORCH_REST_VERSION", "1.19")
    rest_connect_timeout: int = int(os.getenv("ARRAY_ORCH_REST_CONNECT_TIMEOUT", "5"))
    rest_read_timeout: int = int(os.getenv("ARRAY_ORCH_REST_READ_TIMEOUT", "30"))

    # vSphere
    vsphere_port: int = int(os.getenv("ARRAY_ORCH_VSPHERE_PORT", "443"))
    vsphere_connect_timeout: int = int(os.getenv("ARRAY_ORCH_VSPHERE_CONNECT_TIMEOUT", "30"))

    # Workload domain provisioning
    host_group_prefix: str = os.getenv("ARRAY_ORCH_HOST_GROUP_PREFIX", "WorkloadDomain")
    eradicate_on_rollback: bool = os.getenv("ARRAY_ORCH_ERADICATE_ON_ROLLBACK", "true").lower() == "true"

    # iSCSI target parameters applied to every FlashArray portal
    iscsi_delayed_ack: bool = os.getenv("ARRAY_ORCH_ISCSI_DELAYED_ACK", "false").lower() == "true"
    iscsi_login_timeout: int = int(os.getenv("ARRAY_ORCH_ISCSI_LOGIN_TIMEOUT", "30"))

    # Logging
    log_level: str = os.getenv("LOG_LEVEL", "INFO")

    class Config:
        env_prefix = "ARRAY_ORCH_"


settings = Settings()

# REST timeout tuple used by every array call (connect, read)
REST_TIMEOUT = (settings.rest_connect_timeout, settings.rest_read_timeout)
