"""
=============================================================================
APPLICATION CONFIGURATION
=============================================================================

One dataclass holds every tunable, with defaults suitable for development.
Values come from code, from RESTROUTE_* environment variables, or from the
command line (see __main__.py), and are validated once at startup.

    ┌──────────────────────┐   ┌──────────────────────┐   ┌──────────────┐
    │ AppConfig() defaults │ → │ AppConfig.from_env() │ → │ CLI --flags  │
    └──────────────────────┘   └──────────────────────┘   └──────────────┘
                                                                 │
                                                                 ▼
                                                         config.validate()

=============================================================================
"""

from dataclasses import dataclass
import os


VALID_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass
class AppConfig:
    """
    Configuration for a restroute Application.

    =========================================================================
    CONFIGURATION GROUPS
    =========================================================================

    NETWORK          host, port, max_request_size
    UPLOADS          max_upload_size, upload_chunk_size, upload_spool_size
    LISTS            default_page_size, max_page_size, emit_link_header
    ERROR POLICY     validation_status, oversize_status
    LOGGING          log_level, log_format
    IDENTITY         server_name

    =========================================================================
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK SETTINGS
    # ─────────────────────────────────────────────────────────────────────

    host: str = "127.0.0.1"
    port: int = 8080

    max_request_size: int = 10 * 1024 * 1024
    """Limit for raw requests given to Dispatcher.handle_raw."""

    # ─────────────────────────────────────────────────────────────────────
    # UPLOADS
    # ─────────────────────────────────────────────────────────────────────

    max_upload_size: int = 50_000_000
    """Total multipart body size; larger uploads fail before the handler."""

    upload_chunk_size: int = 64 * 1024
    upload_spool_size: int = 1024 * 1024
    """Per-file bytes kept in memory before spooling to a temp file."""

    # ─────────────────────────────────────────────────────────────────────
    # LISTS
    # ─────────────────────────────────────────────────────────────────────

    default_page_size: int = 20
    max_page_size: int = 100
    emit_link_header: bool = True

    # ─────────────────────────────────────────────────────────────────────
    # ERROR POLICY
    # ─────────────────────────────────────────────────────────────────────

    validation_status: int = 422
    """422 (semantic errors) or 400 for ValidationFailed outcomes."""

    oversize_status: int = 413
    """413 or 400 for uploads over max_upload_size."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"
    """'text' (Apache-style) or 'json' access log lines."""

    server_name: str = "restroute/1.0"

    @classmethod
    def from_env(cls) -> "AppConfig":
        """
        Create configuration from environment variables.

        =====================================================================
        ENVIRONMENT VARIABLES
        =====================================================================

        RESTROUTE_HOST               (default: 127.0.0.1)
        RESTROUTE_PORT               (default: 8080)
        RESTROUTE_MAX_UPLOAD_SIZE    bytes (default: 50000000)
        RESTROUTE_DEFAULT_PAGE_SIZE  (default: 20)
        RESTROUTE_MAX_PAGE_SIZE      (default: 100)
        RESTROUTE_VALIDATION_STATUS  422 or 400 (default: 422)
        RESTROUTE_OVERSIZE_STATUS    413 or 400 (default: 413)
        RESTROUTE_LINK_HEADER        1/0 (default: 1)
        RESTROUTE_LOG_LEVEL          (default: INFO)
        RESTROUTE_LOG_FORMAT         text or json (default: text)

        =====================================================================
        """
        return cls(
            host=os.getenv("RESTROUTE_HOST", "127.0.0.1"),
            port=int(os.getenv("RESTROUTE_PORT", "8080")),
            max_upload_size=int(os.getenv("RESTROUTE_MAX_UPLOAD_SIZE", "50000000")),
            default_page_size=int(os.getenv("RESTROUTE_DEFAULT_PAGE_SIZE", "20")),
            max_page_size=int(os.getenv("RESTROUTE_MAX_PAGE_SIZE", "100")),
            validation_status=int(os.getenv("RESTROUTE_VALIDATION_STATUS", "422")),
            oversize_status=int(os.getenv("RESTROUTE_OVERSIZE_STATUS", "413")),
            emit_link_header=os.getenv("RESTROUTE_LINK_HEADER", "1").lower() in ("1", "true", "yes"),
            log_level=os.getenv("RESTROUTE_LOG_LEVEL", "INFO"),
            log_format=os.getenv("RESTROUTE_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """
        Validate configuration values at startup.

        Raises:
            ValueError: the first invalid setting found.
        """
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.max_request_size < 1024:
            raise ValueError("max_request_size must be >= 1024")

        if self.max_upload_size < 1:
            raise ValueError("max_upload_size must be >= 1")

        if self.upload_chunk_size < 1024:
            raise ValueError("upload_chunk_size must be >= 1024")

        if self.upload_spool_size < 0:
            raise ValueError("upload_spool_size must be >= 0")

        if self.default_page_size < 1:
            raise ValueError("default_page_size must be >= 1")

        if self.max_page_size < self.default_page_size:
            raise ValueError("max_page_size must be >= default_page_size")

        if self.validation_status not in (400, 422):
            raise ValueError(f"validation_status must be 400 or 422, got {self.validation_status}")

        if self.oversize_status not in (400, 413):
            raise ValueError(f"oversize_status must be 400 or 413, got {self.oversize_status}")

        if self.log_level.upper() not in VALID_LOG_LEVELS:
            raise ValueError(f"Invalid log_level: {self.log_level}")

        if self.log_format not in ("text", "json"):
            raise ValueError(f"log_format must be 'text' or 'json', got {self.log_format}")
