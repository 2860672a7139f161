from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Database
    DATABASE_URL: str = "postgresql+asyncpg://arcline:arcline_dev@db:5432/arcline"

    # Redis
    REDIS_URL: str = "redis://redis:6379/0"

    # Security
    SECRET_KEY: str = "dev-secret-key-not-for-production"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_MINUTES: int = 30
    REFRESH_TOKEN_EXPIRE_DAYS: int = 7
    ALLOWED_ORIGINS: str = "*"

    # Public link secrets (HMAC keys for proposal / signing tokens)
    PROPOSAL_SECRET: str = "dev-proposal-secret"
    DOCUMENT_SIGNING_SECRET: str = "dev-document-signing-secret"
    SIGNING_LINK_EXPIRE_DAYS: int = 30

    # SendGrid
    SENDGRID_API_KEY: str = "mock_sendgrid_key"
    FROM_EMAIL: str = "no-reply@arcline.app"

    # Stripe
    STRIPE_SECRET_KEY: str = "mock_stripe_key"
    STRIPE_PUBLISHABLE_KEY: str = "mock_stripe_pub_key"
    STRIPE_WEBHOOK_SECRET: str = ""

    # QuickBooks Online
    QBO_CLIENT_ID: str = "mock_qbo_client"
    QBO_ACCESS_TOKEN: str = "mock_qbo_token"
    QBO_BASE_URL: str = "https://quickbooks.api.intuit.com/v3"

    # Storage
    STORAGE_BACKEND: str = "local"
    STORAGE_LOCAL_PATH: str = "/app/storage"
    AWS_ACCESS_KEY_ID: str = ""
    AWS_SECRET_ACCESS_KEY: str = ""
    AWS_REGION: str = "us-east-1"
    S3_BUCKET: str = "arcline-files"

    # Invoicing
    INVOICE_RESERVATION_TTL_MINUTES: int = 30

    # Outbox worker
    OUTBOX_BATCH_SIZE: int = 5
    OUTBOX_MAX_RETRIES: int = 3

    # App
    APP_ENV: str = "development"
    APP_URL: str = "http://localhost:8000"
    LOG_LEVEL: str = "INFO"

    model_config = {"env_file": ".env", "extra": "ignore"}


settings = Settings()
