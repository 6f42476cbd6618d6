import os

BACKEND_TOKEN = os.environ.get("BACKEND_TOKEN", "")
APP_DATA_DIR = os.environ.get("APP_DATA_DIR", os.path.join(os.getcwd(), "data"))
LOG_DIR = os.environ.get("LOG_DIR", os.path.join(APP_DATA_DIR, "logs"))
BACKEND_PORT = int(os.environ.get("BACKEND_PORT", "49671"))

DB_PATH = os.path.join(APP_DATA_DIR, "idengine.db")

# Worker
WORKER_TICK_SEC = float(os.environ.get("WORKER_TICK_SEC", "1.0"))
STALE_JOB_SEC = int(os.environ.get("STALE_JOB_SEC", "60"))
STALE_SWEEP_SEC = int(os.environ.get("STALE_SWEEP_SEC", "120"))

# Topic ingestion
AUTO_FETCH_ENABLED = os.environ.get("AUTO_FETCH_ENABLED", "false").lower() in {"1", "true", "yes"}
AUTO_FETCH_INTERVAL_SEC = int(os.environ.get("AUTO_FETCH_INTERVAL_SEC", "180"))
DAILY_TOPIC_LIMIT = int(os.environ.get("DAILY_TOPIC_LIMIT", "300"))
TOPICS_PER_HOUR = int(os.environ.get("TOPICS_PER_HOUR", "35"))
TOPICS_PER_FETCH = int(os.environ.get("TOPICS_PER_FETCH", "5"))
FEED_FETCH_TIMEOUT_SEC = float(os.environ.get("FEED_FETCH_TIMEOUT_SEC", "10"))

# Source health
HEALTH_CHECK_TIMEOUT_SEC = float(os.environ.get("HEALTH_CHECK_TIMEOUT_SEC", "10"))
HEALTH_CHECK_DELAY_SEC = float(os.environ.get("HEALTH_CHECK_DELAY_SEC", "0.1"))


def ensure_dirs() -> None:
    os.makedirs(APP_DATA_DIR, exist_ok=True)
    os.makedirs(LOG_DIR, exist_ok=True)
