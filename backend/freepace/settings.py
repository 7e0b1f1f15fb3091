from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	gemini_api_key: str | None = Field(default=None, validation_alias="GEMINI_API_KEY")
	# Primary model, tried first for every request
	gemini_model: str = Field(default="gemini-3-flash-preview", validation_alias="GEMINI_MODEL")
	# Comma separated models tried in order once the primary model gives up
	gemini_fallback_models: str = Field(default="gemini-2.5-flash", validation_alias="GEMINI_FALLBACK_MODELS")
	gemini_base_url: str = Field(default="https://generativelanguage.googleapis.com/v1beta/models", validation_alias="GEMINI_BASE_URL")
	gemini_timeout_seconds: float = Field(default=30.0, validation_alias="GEMINI_TIMEOUT_SECONDS")
	# Retry policy per model: delay * multiplier ** attempt
	gemini_max_retries: int = Field(default=3, validation_alias="GEMINI_MAX_RETRIES")
	gemini_retry_delay_seconds: float = Field(default=1.0, validation_alias="GEMINI_RETRY_DELAY_SECONDS")
	gemini_backoff_multiplier: float = Field(default=2.0, validation_alias="GEMINI_BACKOFF_MULTIPLIER")

	# Number of AI calls kept by the in-process monitor
	ai_monitor_max_calls: int = Field(default=100, validation_alias="AI_MONITOR_MAX_CALLS")

	# Relay liveness watchdog (disabled unless both are > 0)
	relay_liveness_interval_seconds: float = Field(default=0, validation_alias="RELAY_LIVENESS_INTERVAL_SECONDS")
	relay_liveness_timeout_seconds: float = Field(default=0, validation_alias="RELAY_LIVENESS_TIMEOUT_SECONDS")

	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def gemini_models(self) -> List[str]:
		fallbacks = [m.strip() for m in self.gemini_fallback_models.split(",") if m.strip()]
		return [self.gemini_model] + [m for m in fallbacks if m != self.gemini_model]

	@property
	def liveness_enabled(self) -> bool:
		return self.relay_liveness_interval_seconds > 0 and self.relay_liveness_timeout_seconds > 0

settings = Settings()
