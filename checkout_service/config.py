import os
from dotenv import load_dotenv

load_dotenv() # Optional: Load .env file

APP_HOST = os.getenv("APP_HOST", "0.0.0.0")
APP_PORT = int(os.getenv("APP_PORT", "8000"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# "redis", "sql" or "memory"
ORDER_STORE_BACKEND = os.getenv("ORDER_STORE_BACKEND", "redis")

# Orders are garbage collected by the store once this window has passed
ORDER_TTL_SECONDS = int(os.getenv("ORDER_TTL_SECONDS", 24 * 3600)) # 24 hours

REDIS_HOST = os.getenv("REDIS_HOST", "redis")
REDIS_PORT = int(os.getenv("REDIS_PORT", "6379"))
REDIS_DB = int(os.getenv("REDIS_DB", "0"))
ORDER_KEY_PREFIX = os.getenv("ORDER_KEY_PREFIX", "order:")

DATABASE_USER = os.getenv("POSTGRES_USER", "user")
DATABASE_PASSWORD = os.getenv("POSTGRES_PASSWORD", "password")
DATABASE_HOST = os.getenv("POSTGRES_HOST", "postgres") # Docker service name
DATABASE_PORT = os.getenv("POSTGRES_PORT", "5432")
DATABASE_NAME = os.getenv("POSTGRES_DB", "checkout_db")

# Async database URL for SQLAlchemy
DATABASE_URL = os.getenv(
    "DATABASE_URL",
    f"postgresql+asyncpg://{DATABASE_USER}:{DATABASE_PASSWORD}@{DATABASE_HOST}:{DATABASE_PORT}/{DATABASE_NAME}",
)

# "mock" or "http"
PAYMENT_GATEWAY = os.getenv("PAYMENT_GATEWAY", "mock")
PAYMENT_GATEWAY_URL = os.getenv("PAYMENT_GATEWAY_URL", "http://payments:8080")
PAYMENT_GATEWAY_TIMEOUT_SECONDS = float(os.getenv("PAYMENT_GATEWAY_TIMEOUT_SECONDS", "10.0"))

# --- Mock gateway behaviour ---
# Tokens the mock gateway declines, for exercising the failure path without a real gateway
PAYMENT_FAILURE_TOKENS = frozenset(
    token.strip()
    for token in os.getenv("PAYMENT_FAILURE_TOKENS", "tok_fail,tok_declined,tok_insufficient_funds").split(",")
    if token.strip()
)
PAYMENT_SIMULATED_LATENCY_SECONDS = float(os.getenv("PAYMENT_SIMULATED_LATENCY_SECONDS", "0.01")) # Simulate network
