"""
Configuration loader for Agency Hub.
Reads .env file and exposes settings as module-level constants.
"""

import os
from pathlib import Path

from dotenv import load_dotenv

# ---------------------------------------------------------------------------
# Resolve paths
# ---------------------------------------------------------------------------
APP_DIR = Path(__file__).resolve().parent
PROJECT_ROOT = APP_DIR.parent
DATA_DIR = Path(os.getenv("AGENCY_DATA_DIR", str(PROJECT_ROOT / "data")))

# ---------------------------------------------------------------------------
# Load .env: check working directory first, then project root
# ---------------------------------------------------------------------------
for _env_path in (Path.cwd() / ".env", PROJECT_ROOT / ".env"):
    if _env_path.exists():
        load_dotenv(_env_path)
        break


def _env_bool(name: str, default: str = "") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# ---------------------------------------------------------------------------
# Supabase (PostgreSQL + storage + realtime)
# ---------------------------------------------------------------------------
SUPABASE_URL = os.getenv("SUPABASE_URL", "")
SUPABASE_ANON_KEY = os.getenv("SUPABASE_ANON_KEY", "")
SUPABASE_SERVICE_KEY = os.getenv("SUPABASE_SERVICE_KEY", "")
SUPABASE_KEY = SUPABASE_SERVICE_KEY or SUPABASE_ANON_KEY
USE_SUPABASE = bool(SUPABASE_URL and SUPABASE_KEY)

# ---------------------------------------------------------------------------
# Tenant scoping
# ---------------------------------------------------------------------------
TENANT_ID = os.getenv("AGENCY_TENANT_ID", "")

# Never matches a real tenant; written when a caller forgot to resolve one.
SENTINEL_TENANT_ID = "00000000-0000-0000-0000-000000000000"

# When set, writes without a tenant raise instead of using the sentinel.
REJECT_UNSCOPED_WRITES = _env_bool("AGENCY_REJECT_UNSCOPED_WRITES")

# ---------------------------------------------------------------------------
# Sync Settings
# ---------------------------------------------------------------------------
ACTIVITY_LOG_LIMIT = 100
TASK_RETRIES = int(os.getenv("AGENCY_TASK_RETRIES", "2"))
TASK_BACKOFF_SECONDS = float(os.getenv("AGENCY_TASK_BACKOFF", "0.5"))
FUNCTION_TIMEOUT_SECONDS = int(os.getenv("AGENCY_FUNCTION_TIMEOUT", "60"))
FUNCTION_MAX_RETRIES = 3
SIGNED_URL_EXPIRY_SECONDS = 3600
NOTIFY_DURATION_MS = 4000

# Tables whose changes are pushed to us (external automation writes here)
REALTIME_TABLES = ("signals_personality", "leads")
REALTIME_TIMEOUT_SECONDS = int(os.getenv("AGENCY_REALTIME_TIMEOUT", "15"))

# ---------------------------------------------------------------------------
# Logging
# ---------------------------------------------------------------------------
LOG_PATH = Path(os.getenv("AGENCY_LOG_PATH", str(DATA_DIR / "agency_hub.log")))
LOG_MAX_BYTES = 5 * 1024 * 1024
LOG_BACKUP_COUNT = 3

# ---------------------------------------------------------------------------
# App Metadata
# ---------------------------------------------------------------------------
APP_NAME = "Agency Hub"
APP_VERSION = "2.3.0"

# ---------------------------------------------------------------------------
# Defaults for a tenant that has never saved its settings
# ---------------------------------------------------------------------------
DEFAULT_SETTINGS = {
    "agencyName": "הסוכנות שלי",
    "ownerName": "מנהל",
    "targetMonthlyRevenue": 50000,
    "targetMonthlyGrossProfit": 30000,
    "employeeSalary": 20000,
    "isSalaried": False,
    "logoUrl": None,
    "hasCanvaKey": False,
    "hasGeminiKey": False,
    "hasSignalsWebhookSecret": False,
}

INITIAL_SERVICES = [
    {"serviceKey": "facebook_ads", "label": "קמפיינים בפייסבוק", "isActive": True},
    {"serviceKey": "instagram_ads", "label": "קמפיינים באינסטגרם", "isActive": True},
    {"serviceKey": "tiktok_ads", "label": "קמפיינים בטיקטוק", "isActive": True},
    {"serviceKey": "google_ads", "label": "Google Ads", "isActive": True},
    {"serviceKey": "taboola", "label": "Taboola/Outbrain", "isActive": True},
    {"serviceKey": "easy", "label": "Easy קידום", "isActive": True},
    {"serviceKey": "google_my_business", "label": "Google My Business", "isActive": True},
    {"serviceKey": "social_management", "label": "ניהול סושיאל אורגני", "isActive": True},
    {"serviceKey": "consulting", "label": "ייעוץ אסטרטגי", "isActive": True},
    {"serviceKey": "graphics", "label": "עיצוב גרפי", "isActive": True},
    {"serviceKey": "video_editing", "label": "עריכת וידאו", "isActive": True},
    {"serviceKey": "mailing_sms", "label": "דיוור, SMS", "isActive": True},
]

MESSAGE_PURPOSES = {
    "follow_up": "מעקב",
    "meeting_reminder": "תזכורת פגישה",
    "proposal_sent": "הצעת מחיר",
    "thank_you": "תודה",
    "check_in": "בדיקת סטטוס",
    "intro": "הכרות ראשונית",
    "renewal": "חידוש חוזה",
    "service_update": "עדכון שירות",
    "performance_report": "דוח ביצועים",
    "custom": "אחר",
}
