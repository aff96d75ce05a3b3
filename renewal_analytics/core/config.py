from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_prefix="RENEWAL_", case_sensitive=False, extra="ignore"
    )

    # Health scoring weights (normalized by the engine, need not sum to 1)
    scoring_invoice_overdue_weight: float = 0.25
    scoring_usage_decline_weight: float = 0.20
    scoring_contract_value_weight: float = 0.15
    scoring_renewal_proximity_weight: float = 0.25

    # Risk tiers
    scoring_risk_threshold: int = 60  # score >= this and < 80 is MEDIUM
    scoring_critical_threshold: int = 40  # below this is CRITICAL

    # Renewal risk detectors
    risk_health_score_churn: int = 40
    risk_health_score_downgrade: int = 60
    risk_overdue_invoices_churn: int = 3
    risk_overdue_amount_churn: float = 5000
    risk_days_until_renewal_urgent: int = 30
    risk_days_until_renewal_soon: int = 60
    risk_min_indicators: int = 2

    # General
    log_level: str = "INFO"
    log_json: bool = False


settings = Settings()
