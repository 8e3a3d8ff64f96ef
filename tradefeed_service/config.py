"""
Configuration settings for Trade Feed Service
"""
from pydantic_settings import BaseSettings
from typing import List


class Settings(BaseSettings):
    """Application settings"""

    # Application
    APP_NAME: str = "Trade Feed Service"
    APP_VERSION: str = "1.0.0"
    DEBUG: bool = False

    # Server
    HOST: str = "0.0.0.0"
    PORT: int = 8005

    # MongoDB (trade documents, ratings)
    MONGODB_URL: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "trading"
    MONGODB_TRADES_COLLECTION: str = "trades_new"
    MONGODB_RATINGS_SUMMARY_COLLECTION: str = "user_ratings_summary"
    MONGODB_REVIEWS_COLLECTION: str = "reviews"
    MONGODB_LEGACY_RATINGS_COLLECTION: str = "average_ratings"

    # Redis (feed sessions, cooldowns)
    REDIS_HOST: str = "localhost"
    REDIS_PORT: int = 6379
    REDIS_DB: int = 2
    REDIS_PASSWORD: str = ""
    REDIS_ENABLED: bool = True

    # Auth Service Integration
    AUTH_SERVICE_URL: str = "http://localhost:8001"
    JWT_SECRET_KEY: str = "your-secret-key-change-this-in-production"
    JWT_ALGORITHM: str = "HS256"

    # Kafka
    KAFKA_BOOTSTRAP_SERVERS: str = "localhost:9092"
    KAFKA_ENABLED: bool = True

    # Kafka Topics - Produce
    KAFKA_TOPIC_TRADE_CREATED: str = "trade.created"
    KAFKA_TOPIC_TRADE_DELETED: str = "trade.deleted"
    KAFKA_TOPIC_TRADE_FEATURED: str = "trade.featured"

    # CORS
    CORS_ORIGINS: List[str] = ["*"]

    # Feed pagination
    PAGE_SIZE: int = 20
    SEARCH_PAGE_SIZE: int = 5
    FEATURED_PER_PAGE: int = 3
    MERGE_BLOCK_SIZE: int = 4

    # Feed sessions
    FEED_SESSION_TTL: int = 1800  # 30 minutes
    FEED_SESSION_LOCK_TTL: int = 10
    LOCAL_SESSION_MAX: int = 1000  # in-process sessions when Redis is off

    # Trade rules
    TRADE_COOLDOWN_SECONDS: int = 120
    FEATURE_DURATION_HOURS: int = 24
    MAX_FEATURED_PER_WINDOW: int = 2

    # Ratings
    RATING_RECALC_LIMIT: int = 100

    # Token backfill
    MIGRATION_BATCH_SIZE: int = 50
    MIGRATION_SAMPLE_SIZE: int = 100

    class Config:
        env_file = ".env"
        case_sensitive = True


settings = Settings()
