"""Pydantic configuration models for the exporter."""

from pydantic import BaseModel, Field, field_validator, model_validator
from typing import Optional, Tuple
from urllib.parse import urlsplit


DEFAULT_TRANSMISSION_URL = "http://127.0.0.1:9091"
DEFAULT_LISTEN_ADDRESS = ":29100"
DEFAULT_TELEMETRY_PATH = "/metrics"
LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


class TransmissionConfig(BaseModel):
    """Upstream Transmission RPC endpoint configuration."""
    url: str = DEFAULT_TRANSMISSION_URL
    # Peer port self-test is slow and flaky, it gets its own short deadline
    port_check_timeout: float = Field(default=3.0, gt=0)
    # None means no deadline for the remaining queries
    rpc_timeout: Optional[float] = Field(default=None, gt=0)

    @field_validator('url')
    @classmethod
    def validate_url(cls, v: str) -> str:
        """Validate URL scheme."""
        if not v.startswith(('http://', 'https://', 'unix://')):
            raise ValueError('URL must start with http://, https:// or unix://')
        return v


class WebConfig(BaseModel):
    """HTTP listener configuration."""
    listen_address: str = DEFAULT_LISTEN_ADDRESS
    telemetry_path: str = DEFAULT_TELEMETRY_PATH
    tls_cert_file: Optional[str] = None
    tls_key_file: Optional[str] = None

    @field_validator('listen_address')
    @classmethod
    def validate_listen_address(cls, v: str) -> str:
        """Validate host:port format."""
        split_listen_address(v)
        return v

    @field_validator('telemetry_path')
    @classmethod
    def validate_telemetry_path(cls, v: str) -> str:
        """Telemetry path must be absolute and must not shadow the landing page."""
        if not v.startswith('/') or v == '/':
            raise ValueError('telemetry_path must start with "/" and must not be "/"')
        return v

    @model_validator(mode='after')
    def tls_files_paired(self) -> 'WebConfig':
        """Certificate and key are configured together."""
        if bool(self.tls_cert_file) != bool(self.tls_key_file):
            raise ValueError('tls_cert_file and tls_key_file must be set together')
        return self

    @property
    def host(self) -> str:
        return split_listen_address(self.listen_address)[0]

    @property
    def port(self) -> int:
        return split_listen_address(self.listen_address)[1]

    @property
    def tls_enabled(self) -> bool:
        return bool(self.tls_cert_file and self.tls_key_file)


class LoggingConfig(BaseModel):
    """Log output configuration."""
    level: str = "INFO"
    format: str = "logfmt"

    @field_validator('level')
    @classmethod
    def validate_level(cls, v: str) -> str:
        v = v.upper()
        if v not in LOG_LEVELS:
            raise ValueError(f'Unknown log level: {v}')
        return v

    @field_validator('format')
    @classmethod
    def validate_format(cls, v: str) -> str:
        if v not in ('logfmt', 'json'):
            raise ValueError('Log format must be "logfmt" or "json"')
        return v


class ExporterConfig(BaseModel):
    """Root configuration model for the exporter."""
    transmission: TransmissionConfig = Field(default_factory=TransmissionConfig)
    web: WebConfig = Field(default_factory=WebConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)


def split_listen_address(address: str) -> Tuple[str, int]:
    """
    Split a listen address into host and port.

    Accepts "host:port", ":port" (all interfaces) and "[ipv6]:port".

    Raises:
        ValueError: If the address has no valid port
    """
    try:
        parsed = urlsplit(f"//{address}")
        port = parsed.port
    except ValueError as e:
        raise ValueError(f'Invalid listen address {address!r}: {e}') from e

    if port is None:
        raise ValueError(f'Listen address {address!r} must include a port')

    return parsed.hostname or "", port
