"""
Central constants for the ledger sync service.
"""
from __future__ import annotations

# Scheduler cadence (weekdays only). Changing these requires a redeploy.
SCHEDULER_TIMEZONE = "America/Argentina/Buenos_Aires"
MORNING_SYNC_CRON = "30 8 * * 1-5"
HISTORY_COPY_CRON = "0 19 * * 1-5"

MORNING_SYNC_JOB_ID = "morning_sync"
HISTORY_COPY_JOB_ID = "history_copy"

# Ledger layout (Errores_SKU sheet, zero-based column indexes)
LEDGER_SHEET = "Errores_SKU"
LEDGER_LAST_COLUMN = "H"
SKU_COLUMN = 2  # C
SHIPMENT_ID_COLUMN = 5  # F
ACCOUNT_COLUMN = 6  # G
ITEM_ID_COLUMN = 7  # H
ITEM_ID_HEADER = "ID_ML"

TOKENS_RANGE = "Tokens!A:D"
HISTORY_SHEET = "Historial"
HISTORY_DATE_HEADER = "Fecha"

# Marketplace
ML_API_BASE_URL = "https://api.mercadolibre.com"
SELLER_SKU_ATTRIBUTE = "SELLER_SKU"

# Pacing between marketplace calls (seconds)
ITEM_PACING_SECONDS = 0.1
ROW_PACING_SECONDS = 0.3
