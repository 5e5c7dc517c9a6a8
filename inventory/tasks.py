"""
Inventory — Celery Tasks

Periodic consistency check of the stock ledger.

@file inventory/tasks.py
"""

import logging

from celery import shared_task

logger = logging.getLogger('repairshop')


@shared_task(name='inventory.verify_stock_ledger')
def verify_stock_ledger_task():
    """
    Daily task: replay every product's movement chain and compare it with
    the current_stock counter. Mismatches are logged, never auto-corrected.
    """
    from .services import StockLedger

    checks = StockLedger.verify_all()
    failures = [check for check in checks if not check.ok]
    for check in failures:
        logger.error(
            'Stock ledger mismatch product=%s counter=%s replayed=%s chain_intact=%s movements=%s',
            check.product_id, check.current_stock, check.replayed_stock,
            check.chain_intact, check.movement_count,
        )
    logger.info(
        'verify_stock_ledger_task completed: %d products checked, %d mismatches.',
        len(checks), len(failures),
    )
    return {
        'checked_count': len(checks),
        'mismatch_count': len(failures),
        'mismatched_product_ids': [check.product_id for check in failures],
    }
