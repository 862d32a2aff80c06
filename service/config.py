"""Configuration module for the Reconciliation Dashboard service."""

import logging
import os
from pathlib import Path

from aws_lambda_powertools.logging import Logger
from dotenv import load_dotenv

load_dotenv()

_DATA_DIR = Path(__file__).resolve().parent / "data"

STAGE = os.getenv("STAGE", "dev")
FLASK_SECRET_KEY = os.getenv("FLASK_SECRET_KEY")

DASHBOARD_API_URL = os.getenv("DASHBOARD_API_URL", "")
DASHBOARD_API_KEY = os.getenv("DASHBOARD_API_KEY", "")
DASHBOARD_API_TIMEOUT_SECONDS = float(os.getenv("DASHBOARD_API_TIMEOUT_SECONDS", "30"))
DASHBOARD_TREE_OPERATION = os.getenv("DASHBOARD_TREE_OPERATION", "GetDashboard")

LANGUAGE_CODE = os.getenv("LANGUAGE_CODE", "en")

TENANTS_CONFIG_PATH = os.getenv("TENANTS_CONFIG_PATH", str(_DATA_DIR / "tenants.json"))
CASH_POSITION_PATH = os.getenv("CASH_POSITION_PATH", str(_DATA_DIR / "cash-position.json"))

FILTERS_CACHE_TIMEOUT_SECONDS = int(os.getenv("FILTERS_CACHE_TIMEOUT_SECONDS", "300"))
DASHBOARD_SESSION_TTL_SECONDS = int(os.getenv("DASHBOARD_SESSION_TTL_SECONDS", "3600"))

logger: Logger = Logger(service=os.getenv("POWERTOOLS_SERVICE_NAME", "reconciliation-dashboard"))

for name in ["urllib3", "requests", "werkzeug.serving"]:
    logging.getLogger(name).setLevel(logging.CRITICAL)
