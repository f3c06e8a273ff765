import os
from pathlib import Path

from dotenv import load_dotenv

# Load .env from project root
env_path = Path(__file__).resolve().parent.parent / ".env"
load_dotenv(dotenv_path=env_path)

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///./clinicflow.db")

# All scheduling arithmetic happens in this zone (IANA name)
CLINIC_TIMEZONE = os.getenv("CLINIC_TIMEZONE", "Africa/Nairobi")

# Slot width used when a doctor has no slot configuration row
DEFAULT_SLOT_DURATION_MINUTES = int(os.getenv("DEFAULT_SLOT_DURATION_MINUTES", "30"))

# Billing
DEFAULT_CONSULTATION_FEE = float(os.getenv("DEFAULT_CONSULTATION_FEE", "5000"))
CONSULTATION_FEE_SERVICE_CODE = os.getenv("CONSULTATION_FEE_SERVICE_CODE", "CONSULTATION")

# How far ahead follow-up suggestions look for open dates
FOLLOW_UP_SEARCH_DAYS = int(os.getenv("FOLLOW_UP_SEARCH_DAYS", "14"))

# Bounded exponential backoff for store/service outages
DEPENDENCY_RETRY_ATTEMPTS = int(os.getenv("DEPENDENCY_RETRY_ATTEMPTS", "3"))
DEPENDENCY_RETRY_BASE_DELAY = float(os.getenv("DEPENDENCY_RETRY_BASE_DELAY", "0.2"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()

# Comma-separated origins allowed by CORS
ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "http://localhost:5173,http://localhost:3000").split(",")
