from typing import List

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv(override=True)

class Settings(BaseSettings):
    PROJECT_NAME: str = "WalletAuth"
    # Application settings
    PORT: int | None = 8000
    HOST: str | None = "127.0.0.1"
    VERSION: str | None = "1.0.0"
    DOC_PASSWORD: str | None = None
    LOG_LEVEL: str = "INFO"
    CORS_ORIGINS: List[str] = ["*"]

    # SSL settings
    SSL_KEY: str | None = None
    SSL_CERT: str | None = None

    # SQLAlchemy database URL
    DATABASE_URL: str = "sqlite:///./wallet_auth.db"
    CREATE_TABLES_ON_STARTUP: bool = True

    # Login configuration
    ENCODE_KEY: str | None = None
    ENCODE_ALGORITHM: str | None = "HS256"
    ACCESS_TOKEN_EXPIRE_SECONDS: int | None = 1800 # 30 minutes
    NONCE_EXPIRY_SECONDS: int | None = 300 # 5 minutes

    # Nonce store: "memory" or "redis"
    NONCE_STORE: str = "memory"
    NONCE_KEY_PREFIX: str = "auth:nonce:"
    NONCE_SWEEP_INTERVAL_SECONDS: int = 60 # 0 disables the sweep thread
    # "consume": a binding mismatch burns the nonce
    # "retain": the nonce stays usable by its bound owner until it expires
    NONCE_BINDING_MISMATCH_POLICY: str = "consume"

    # Challenge message defaults
    APP_DOMAIN: str = "localhost"
    SIGN_IN_STATEMENT: str = "Sign in with your wallet."

    # Redis settings
    REDIS_HOST: str | None = None
    REDIS_PORT: int | None = 6379
    REDIS_MAX_CONNECTIONS: int | None = 50
    REDIS_SSL: bool | None = False

    # Upper bound for a single store / database call
    COLLABORATOR_TIMEOUT_SECONDS: float = 5.0

    # Debug settings
    DEBUG: bool = False

    class Config:
        env_file = ".env"

# Instantiate the settings
settings = Settings()
