import os
from pathlib import Path

from dotenv import load_dotenv

# Explicitly load .env from project root (parent of quicklinks/)
ENV_PATH = Path(__file__).parent.parent / ".env"
load_dotenv(ENV_PATH)

ENVIRONMENT = os.getenv("ENVIRONMENT", "dev")
PUBLIC_BASE_URL = os.getenv("PUBLIC_BASE_URL", "").rstrip("/")
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# 0 writes every snapshot immediately; anything above debounces writes
SNAPSHOT_FLUSH_SECONDS = float(os.getenv("SNAPSHOT_FLUSH_SECONDS", 0))

EVENT_LOG_USER_ID = os.getenv("EVENT_LOG_USER_ID", "anonymous-user")
