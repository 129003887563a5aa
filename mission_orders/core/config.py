import os

BACKEND_TOKEN = os.environ.get("BACKEND_TOKEN", "")
APP_DATA_DIR = os.environ.get("APP_DATA_DIR", os.path.join(os.getcwd(), "data"))
LOG_DIR = os.environ.get("LOG_DIR", os.path.join(APP_DATA_DIR, "logs"))
LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")
STORAGE_DIR = os.environ.get("STORAGE_DIR", os.path.join(APP_DATA_DIR, "storage"))

DB_PATH = os.path.join(APP_DATA_DIR, "mission_orders.db")

# Public base URL used to build verification links embedded in QR codes
APP_BASE_URL = os.environ.get("APP_BASE_URL", "http://localhost:3000")

# Upstream match/official data
SOURCE_API_URL = os.environ.get("SOURCE_API_URL", "http://localhost:8000/api")
SOURCE_API_TOKEN = os.environ.get("SOURCE_API_TOKEN", "")

# Outbound e-mail
EMAIL_API_URL = os.environ.get("EMAIL_API_URL", "")
EMAIL_API_KEY = os.environ.get("EMAIL_API_KEY", "")
EMAIL_FROM = os.environ.get("EMAIL_FROM", "no-reply@localhost")

DOCUMENT_LANGUAGE = os.environ.get("DOCUMENT_LANGUAGE", "ar")

# Worker cycle
STALE_MINUTES = int(os.environ.get("STALE_MINUTES", "10"))
MAX_JOBS_PER_CYCLE = int(os.environ.get("MAX_JOBS_PER_CYCLE", "5"))
JOB_FANOUT_LIMIT = int(os.environ.get("JOB_FANOUT_LIMIT", "4"))
WORKER_POLL_INTERVAL_SEC = int(os.environ.get("WORKER_POLL_INTERVAL_SEC", "0"))

# Rendering assets (URL or local path, empty disables the asset)
FONT_REGULAR_URL = os.environ.get(
    "FONT_REGULAR_URL",
    "https://github.com/google/fonts/raw/main/ofl/amiri/Amiri-Regular.ttf",
)
FONT_BOLD_URL = os.environ.get(
    "FONT_BOLD_URL",
    "https://github.com/google/fonts/raw/main/ofl/amiri/Amiri-Bold.ttf",
)
LOGO_URL = os.environ.get("LOGO_URL", "")
BACKGROUND_URL = os.environ.get("BACKGROUND_URL", "")
STAMP_URL = os.environ.get("STAMP_URL", "")


def ensure_dirs() -> None:
    os.makedirs(APP_DATA_DIR, exist_ok=True)
    os.makedirs(LOG_DIR, exist_ok=True)
    os.makedirs(STORAGE_DIR, exist_ok=True)
