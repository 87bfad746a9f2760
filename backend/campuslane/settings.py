from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

class Settings(BaseSettings):
	# "development" | "production" | "test"
	env: str = Field(default="development", validation_alias="ENV")
	log_level: str = Field(default="INFO", validation_alias="LOG_LEVEL")

	# Database
	database_url: str | None = Field(default=None, validation_alias="DATABASE_URL")

	# Auth configuration
	jwt_secret_key: str = Field(default="change-me", validation_alias="JWT_SECRET_KEY")
	jwt_algorithm: str = Field(default="HS256", validation_alias="JWT_ALGORITHM")
	# Tokens for users and admins share the same lifetime (7 days)
	access_token_expire_minutes: int = Field(default=7 * 24 * 60, validation_alias="ACCESS_TOKEN_EXPIRE_MINUTES")
	google_userinfo_url: str = Field(default="https://www.googleapis.com/oauth2/v3/userinfo", validation_alias="GOOGLE_USERINFO_URL")

	# Object storage (S3 or any S3-compatible endpoint)
	aws_region: str = Field(default="ap-south-1", validation_alias="AWS_REGION")
	aws_access_key_id: str | None = Field(default=None, validation_alias="AWS_ACCESS_KEY_ID")
	aws_secret_access_key: str | None = Field(default=None, validation_alias="AWS_SECRET_ACCESS_KEY")
	s3_bucket: str | None = Field(default=None, validation_alias="S3_BUCKET")
	s3_endpoint_url: str | None = Field(default=None, validation_alias="S3_ENDPOINT_URL")
	presign_expires_seconds: int = Field(default=300, validation_alias="PRESIGN_EXPIRES_SECONDS")

	# HTTP
	cors_origins: str = Field(
		default="http://localhost:3000,http://localhost:3001,http://localhost:5173",
		validation_alias="CORS_ORIGINS",
	)
	rate_limit_enabled: bool = Field(default=True, validation_alias="RATE_LIMIT_ENABLED")
	# Return exception text in 500 responses
	debug_errors: bool = Field(default=False, validation_alias="DEBUG_ERRORS")

	# Seed admin
	admin_email: str = Field(default="admin@campuslane.com", validation_alias="ADMIN_EMAIL")
	admin_password: str = Field(default="admin123", validation_alias="ADMIN_PASSWORD")

	# Housekeeping
	notification_retention_days: int = Field(default=30, validation_alias="NOTIFICATION_RETENTION_DAYS")
	# Weekly/monthly progress buckets are cut in this timezone
	progress_timezone: str = Field(default="Asia/Kolkata", validation_alias="PROGRESS_TIMEZONE")

	# pydantic-settings v2 style config
	model_config = SettingsConfigDict(env_file=".env", extra="ignore")

	@property
	def cors_origin_list(self) -> list[str]:
		return [o.strip() for o in self.cors_origins.split(",") if o.strip()]

settings = Settings()
