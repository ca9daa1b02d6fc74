"""Sync engine configuration via pydantic-settings."""

from __future__ import annotations

from pydantic_settings import BaseSettings

PROVIDERS = ("hubspot", "monday", "sheets", "xero", "slack", "calendar", "gmail")


class SyncSettings(BaseSettings):
    database_url: str = "sqlite+aiosqlite:///agency_sync.db"
    echo_sql: bool = False
    app_title: str = "Agency Sync"

    # HubSpot (deal pipeline)
    hubspot_token: str | None = None
    hubspot_pipeline_id: str | None = None
    hubspot_base_url: str = "https://api.hubapi.com"

    # monday.com (time tracking + creatives boards)
    monday_token: str | None = None
    monday_base_url: str = "https://api.monday.com"
    monday_api_version: str = "2024-10"

    # Xero (accounting ledger)
    xero_token: str | None = None
    xero_tenant_id: str | None = None
    xero_base_url: str = "https://api.xero.com"

    # Google Sheets / Calendar / Gmail share one bearer token
    sheets_token: str | None = None
    sheets_spreadsheet_id: str | None = None
    sheets_base_url: str = "https://sheets.googleapis.com"
    google_token: str | None = None
    google_calendar_id: str = "primary"
    google_calendar_base_url: str = "https://www.googleapis.com/calendar/v3"
    gmail_base_url: str = "https://gmail.googleapis.com/gmail/v1"

    # Slack
    slack_token: str | None = None
    slack_channel_ids: str = ""
    slack_base_url: str = "https://slack.com/api"

    # Outbound request ceilings, per provider
    hubspot_max_requests: int = 100
    hubspot_window_seconds: float = 10.0
    monday_max_requests: int = 10
    monday_window_seconds: float = 1.0
    sheets_max_requests: int = 60
    sheets_window_seconds: float = 60.0
    xero_max_requests: int = 60
    xero_window_seconds: float = 60.0
    slack_max_requests: int = 50
    slack_window_seconds: float = 60.0
    calendar_max_requests: int = 10
    calendar_window_seconds: float = 1.0
    gmail_max_requests: int = 10
    gmail_window_seconds: float = 1.0

    http_timeout_seconds: float = 30.0
    page_size: int = 100
    max_pages: int = 1000
    sheets_batch_size: int = 50
    lookback_days: int = 30
    gmail_max_messages: int = 500

    # Orchestrator
    error_log_limit: int = 100
    sync_stale_after_seconds: int = 3600

    # Entity resolution / merge
    primary_source: str = "monday"
    include_prospects_in_merge: bool = False
    suggestion_threshold: float = 0.8

    model_config = {"env_prefix": "AGENCY_SYNC_", "env_file": ".env", "extra": "ignore"}

    @property
    def slack_channels(self) -> list[str]:
        return [c.strip() for c in self.slack_channel_ids.split(",") if c.strip()]

    def rate_limit(self, provider: str) -> tuple[int, float]:
        """Return (max_requests, window_seconds) for a provider."""
        return (
            int(getattr(self, f"{provider}_max_requests")),
            float(getattr(self, f"{provider}_window_seconds")),
        )


settings = SyncSettings()
