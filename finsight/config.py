"""Configuration management using Pydantic Settings"""

from pydantic_settings import BaseSettings, SettingsConfigDict

from finsight.domain.policy import AnalyticsPolicy


class Settings(BaseSettings):
    """Application configuration loaded from environment variables"""

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    # Database
    database_url: str = "sqlite:///./finsight.db"

    # Transaction store
    transaction_api_base: str = "http://localhost:8001"
    http_timeout_seconds: float = 5.0

    # Service
    service_name: str = "finsight-engine"
    log_level: str = "INFO"

    # Analysis
    analysis_window_days: int = 90
    usd_exchange_rate: float = 130.0
    training_timeout_seconds: float = 30.0

    # Anomaly detection
    anomaly_sigma: float = 2.0
    anomaly_critical_sigma: float = 3.0
    anomaly_critical_ratio: float = 5.0
    anomaly_high_ratio: float = 3.0

    # Forecasting
    trend_slope_threshold: float = 5.0
    seasonality_threshold: float = 0.15
    history_months: int = 12

    # Budget risk (percent of budget, projected)
    budget_high_risk_percent: float = 100.0
    budget_medium_risk_percent: float = 90.0

    # Savings and debt
    compressible_reduction: float = 0.15
    optimal_savings_rate: float = 0.20
    debt_ratio_high: float = 30.0
    debt_ratio_medium: float = 20.0
    debt_ratio_low: float = 10.0

    # Model training
    learning_rate: float = 0.01
    epochs: int = 100
    min_deploy_accuracy: float = 60.0

    def policy(self) -> AnalyticsPolicy:
        """Thresholds the engine consumes, with environment overrides applied"""
        return AnalyticsPolicy(
            anomaly_sigma=self.anomaly_sigma,
            anomaly_critical_sigma=self.anomaly_critical_sigma,
            anomaly_critical_ratio=self.anomaly_critical_ratio,
            anomaly_high_ratio=self.anomaly_high_ratio,
            trend_slope_threshold=self.trend_slope_threshold,
            seasonality_threshold=self.seasonality_threshold,
            history_months=self.history_months,
            budget_high_risk_percent=self.budget_high_risk_percent,
            budget_medium_risk_percent=self.budget_medium_risk_percent,
            compressible_reduction=self.compressible_reduction,
            optimal_savings_rate=self.optimal_savings_rate,
            debt_ratio_high=self.debt_ratio_high,
            debt_ratio_medium=self.debt_ratio_medium,
            debt_ratio_low=self.debt_ratio_low,
            learning_rate=self.learning_rate,
            epochs=self.epochs,
            min_deploy_accuracy=self.min_deploy_accuracy,
            usd_exchange_rate=self.usd_exchange_rate,
        )


settings = Settings()
