# billing_api/config.py
"""Runtime configuration, read once from the environment (and a local .env)."""

import os

from dotenv import load_dotenv

load_dotenv()

# SQLAlchemy URL; defaults to a file in the project root
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///db.sqlite")

# Currency every invoice total is settled in (ISO 4217)
SETTLEMENT_CURRENCY = os.getenv("SETTLEMENT_CURRENCY", "EUR").strip().upper()

# Seconds before an outbound call to a payment provider is abandoned
PROVIDER_TIMEOUT = float(os.getenv("PROVIDER_TIMEOUT", "10"))

# Public base URL the providers can reach us on; webhooks are only sent when set
WEBHOOK_BASE_URL = os.getenv("WEBHOOK_BASE_URL", "").rstrip("/")

SUMUP_API_URL = os.getenv("SUMUP_API_URL", "https://api.sumup.com").rstrip("/")

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
