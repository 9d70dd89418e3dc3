"""Runtime settings, read once from the environment."""
import os

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./railtrace.db")

# Fix for Render/Heroku: they use postgres:// but SQLAlchemy needs postgresql://
if DATABASE_URL.startswith("postgres://"):
    DATABASE_URL = DATABASE_URL.replace("postgres://", "postgresql://", 1)

ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

# External collaborators
ACCESS_SERVICE_URL = os.getenv("ACCESS_SERVICE_URL", "http://localhost:8101")
INFERENCE_SERVICE_URL = os.getenv("INFERENCE_SERVICE_URL", "http://localhost:8102")
BLOB_STORE_URL = os.getenv("BLOB_STORE_URL", "http://localhost:8103")

INFERENCE_TIMEOUT_SECONDS = float(os.getenv("INFERENCE_TIMEOUT_SECONDS", "10"))
STORAGE_TIMEOUT_SECONDS = float(os.getenv("STORAGE_TIMEOUT_SECONDS", "5"))

# Optimistic write path
WRITE_MAX_ATTEMPTS = int(os.getenv("WRITE_MAX_ATTEMPTS", "5"))
WRITE_RETRY_BACKOFF_SECONDS = float(os.getenv("WRITE_RETRY_BACKOFF_SECONDS", "0.05"))
