"""Application-wide constants for the Innkeeper backend."""

from __future__ import annotations

BRAND_NAME = "Innkeeper"

DEFAULT_CURRENCY = "LKR"

# Overstay billing
OVERSTAY_INVOICE_PREFIX = "OVERSTAY-"
OVERSTAY_LINE_ITEM_TYPE = "overstay_charge"

# Booking hold scheduler
HOLD_EXPIRED_REASON = "Booking hold period expired"
HOLD_EXPIRED_REFUND_REASON = "Booking hold period expired - auto-cancelled"
SYSTEM_ACTOR = "system"

# Housekeeping
CLEANING_TASK_DUE_HOURS = 2
CLEANING_TASK_ESTIMATED_MINUTES = 60
PRIORITY_LADDER = ("low", "medium", "high", "urgent")

# Background job types
JOB_ESCALATE_HOUSEKEEPING = "housekeeping.escalate_priority"

# Settings persistence
HOTEL_SETTINGS_KEY = "hotel_settings"
SECRET_SETTING_FIELDS = frozenset({"smtp_password", "payment_gateway_secret"})
