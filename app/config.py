"""
Application Configuration
"""
from pydantic_settings import BaseSettings
from typing import Dict, List


class Settings(BaseSettings):
    """Application settings loaded from environment variables"""

    # Database
    DATABASE_URL: str = "sqlite:///./wallpaper.db"

    # JWT
    JWT_SECRET_KEY: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    JWT_ACCESS_TOKEN_EXPIRE_MINUTES: int = 10080  # 7 days

    # API
    API_V1_PREFIX: str = "/v1/api"
    PROJECT_NAME: str = "Wallpaper API"
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGINS: str = "*"

    @property
    def CORS_ORIGINS(self) -> List[str]:
        """Parse CORS origins from string"""
        if self.ALLOWED_ORIGINS == "*":
            return ["*"]
        return [origin.strip() for origin in self.ALLOWED_ORIGINS.split(",")]

    # Google Play
    GOOGLE_PLAY_SERVICE_ACCOUNT_PATH: str = "google-play-service-account.json"
    GOOGLE_PLAY_PACKAGE_NAME: str = "com.yourapp.wallpapers"
    GOOGLE_PLAY_BASIC_PRODUCT_IDS: str = "com.yourapp.subscription.basic"
    GOOGLE_PLAY_PREMIUM_PRODUCT_IDS: str = "com.yourapp.subscription.premium"
    GOOGLE_PLAY_TIMEOUT_SECONDS: float = 10.0

    @property
    def SUBSCRIPTION_TIERS(self) -> Dict[str, str]:
        """Map Google Play subscription IDs to tiers"""
        tiers = {}
        for tier, raw in (
            ("basic", self.GOOGLE_PLAY_BASIC_PRODUCT_IDS),
            ("premium", self.GOOGLE_PLAY_PREMIUM_PRODUCT_IDS),
        ):
            for product_id in raw.split(","):
                if product_id.strip():
                    tiers[product_id.strip()] = tier
        return tiers

    # Firebase Cloud Messaging
    FCM_CREDENTIALS_PATH: str = "firebase-admin-sdk.json"
    FCM_TIMEOUT_SECONDS: float = 10.0
    FCM_ANDROID_CHANNEL_ID: str = "wallpaper_notifications"
    NOTIFICATION_TOPIC_PREFIX: str = ""

    # Rate limiting (slowapi syntax)
    RATE_LIMIT_VERIFY: str = "30/minute"

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 5000

    class Config:
        env_file = ".env"
        case_sensitive = True


# Global settings instance
settings = Settings()
