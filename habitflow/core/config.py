from datetime import date, datetime
from zoneinfo import ZoneInfo

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    DATABASE_URL: str = "postgresql://habitflow:habitflow@db:5432/habitflow"
    APP_ENV: str = "development"
    LOG_LEVEL: str = "INFO"

    # IANA zone whose midnight-to-midnight days define "today".
    TIMEZONE: str = "UTC"

    # Comma-separated allowed origins, or "*" to allow all.
    # Example: "https://myapp.com,https://api.myapp.com"
    CORS_ORIGINS: str = "*"

    # Adaptive goal policy
    ADAPTIVE_WINDOW_DAYS: int = 7
    ADAPTIVE_INCREASE_DAYS: int = 5
    ADAPTIVE_DECREASE_DAYS: int = 2
    ADAPTIVE_STEP_RATIO: float = 0.1

    # Insight engine tunables
    INSIGHT_MAX_RESULTS: int | None = 15
    CORRELATION_MIN_RATIO: float = 0.7
    CORRELATION_MIN_DAYS: int = 10

    @property
    def cors_origins_list(self) -> list[str]:
        if self.CORS_ORIGINS.strip() == "*":
            return ["*"]
        return [o.strip() for o in self.CORS_ORIGINS.split(",") if o.strip()]

    def today(self) -> date:
        return datetime.now(tz=ZoneInfo(self.TIMEZONE)).date()

    def adaptive_policy(self):
        from habitflow.services.goal_progression import AdaptivePolicy

        return AdaptivePolicy(
            window_days=self.ADAPTIVE_WINDOW_DAYS,
            increase_threshold=self.ADAPTIVE_INCREASE_DAYS,
            decrease_threshold=self.ADAPTIVE_DECREASE_DAYS,
            step_ratio=self.ADAPTIVE_STEP_RATIO,
        )

    def insight_rules(self):
        from habitflow.services.insights_engine import InsightRules

        return InsightRules(
            max_insights=self.INSIGHT_MAX_RESULTS,
            correlation_min_ratio=self.CORRELATION_MIN_RATIO,
            correlation_min_days=self.CORRELATION_MIN_DAYS,
            adaptive=self.adaptive_policy(),
        )


settings = Settings()
