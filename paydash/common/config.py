"""Central environment-driven settings for the payments service.

The service process loads this once at startup. Behavior is controlled by
environment variables (see `.env.example`).
"""

from pydantic_settings import BaseSettings, SettingsConfigDict


class CommonSettings(BaseSettings):
    """Typed view of runtime configuration from environment variables."""

    service_name: str = "payments-api"
    log_level: str = "INFO"
    database_dsn: str = "sqlite:///./paydash.db"
    tracing_enabled: bool = True
    otel_exporter_otlp_endpoint: str = "http://otel-collector:4318/v1/traces"

    gateway_auth_url: str = "https://auth.truelayer-sandbox.com"
    gateway_api_url: str = "https://api.truelayer-sandbox.com"
    gateway_client_id: str = ""
    gateway_client_secret: str = ""
    gateway_scope: str = "payments"
    gateway_timeout_seconds: float = 10.0
    # Connection-level retries only; the request (and its idempotency key) is reused.
    gateway_connect_retries: int = 2
    signing_key_id: str = ""
    signing_private_key_path: str = "ec512-private-key.pem"
    token_safety_margin_seconds: int = 60

    hosted_page_url: str = "https://payment.truelayer-sandbox.com/payments"
    hosted_page_return_uri: str = "http://localhost:5173/dashboard"
    # Dashboard origin allowed by CORS.
    frontend_url: str = "http://localhost:5173"

    reconcile_max_attempts: int = 4
    reconcile_delay_seconds: float = 0.8

    supported_currencies: list[str] = ["GBP", "EUR"]
    beneficiary_name: str = "Test Merchant"
    beneficiary_sort_code: str = "123456"
    beneficiary_account_number: str = "12345678"

    auth_domain: str = ""
    auth_audience: str = ""
    stats_default_days: int = 7
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = CommonSettings()
