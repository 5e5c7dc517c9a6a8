"""
Core — Shared Constants

@file core/constants.py
"""

DEFAULT_PAGE_SIZE = 25
MAX_PAGE_SIZE = 200

AUDIT_ACTION_CREATE = 'CREATE'
AUDIT_ACTION_UPDATE = 'UPDATE'
AUDIT_ACTION_STATUS_CHANGE = 'STATUS_CHANGE'

MONEY_MAX_DIGITS = 10
MONEY_DECIMAL_PLACES = 2

ORDER_NUMBER_PREFIX = 'ORD'
SALE_NUMBER_PREFIX = 'VEN'
PURCHASE_NUMBER_PREFIX = 'COM'
