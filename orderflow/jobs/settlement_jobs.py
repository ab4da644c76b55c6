"""
Settlement Check Job.

Promotes held card payments once Authorize.Net reports a settled batch:
- Fetch settled batches for the lookback window
- For every PENDING Authorize.Net transaction not already promoted,
  append a COMPLETED Transaction and Payment (ledger rows are never edited)
- Move the order PENDING -> PROCESSING and leave a note

Batch ids are not stored per transaction, so any successful settlement in
the window promotes every held transaction.

Triggers:
- Interval job (via APScheduler), when SETTLEMENT_CHECK_ENABLED
"""
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from orderflow.config import settings
from orderflow.database import custom_json_dumps
from orderflow.models.order import (
    Order,
    OrderNote,
    OrderStatus,
    Payment,
    PaymentMethod,
    PaymentStatus,
    Transaction,
)
from orderflow.services.authorize_net_service import (
    GATEWAY_NAME,
    PROVIDER_NAME,
    AuthorizeNetGateway,
    PaymentGateway,
)

logger = logging.getLogger(__name__)

SETTLED_STATE = "settledSuccessfully"


async def run_settlement_check(
    db: AsyncSession,
    gateway: Optional[PaymentGateway] = None,
    now: Optional[datetime] = None,
) -> Dict[str, Any]:
    """
    Main settlement job.

    Returns:
        Summary with settled batch ids, promoted count and per-row errors
    """
    gateway = gateway or AuthorizeNetGateway()
    now = now or datetime.now(timezone.utc)
    start = now - timedelta(hours=settings.SETTLEMENT_LOOKBACK_HOURS)

    results: Dict[str, Any] = {
        "started_at": now.isoformat(),
        "settled_batches": [],
        "updated": 0,
        "errors": [],
    }

    batches = await gateway.get_settled_batches(start, now)
    settled = [b.get("batchId") for b in batches if b.get("settlementState") == SETTLED_STATE]
    results["settled_batches"] = settled
    if not settled:
        logger.info("Settlement check: no settled batches in window")
        return results

    pending_result = await db.execute(
        select(Transaction)
        .where(
            Transaction.payment_status == PaymentStatus.PENDING.value,
            Transaction.payment_gateway_name == GATEWAY_NAME,
        )
        .order_by(Transaction.created_at)
    )
    pending = list(pending_result.scalars().all())

    completed_result = await db.execute(
        select(Transaction.payment_gateway_transaction_id).where(
            Transaction.payment_status == PaymentStatus.COMPLETED.value,
            Transaction.payment_gateway_name == GATEWAY_NAME,
            Transaction.payment_gateway_transaction_id.is_not(None),
        )
    )
    already_completed = {row[0] for row in completed_result.all()}

    for held in pending:
        gateway_txn_id = held.payment_gateway_transaction_id
        if not gateway_txn_id:
            logger.warning(f"Held transaction {held.id} has no gateway transaction id, skipping")
            continue
        if gateway_txn_id in already_completed:
            continue

        try:
            db.add(
                Transaction(
                    order_id=held.order_id,
                    amount=held.amount,
                    payment_status=PaymentStatus.COMPLETED.value,
                    payment_gateway_name=GATEWAY_NAME,
                    payment_gateway_transaction_id=gateway_txn_id,
                    payment_gateway_response=custom_json_dumps(
                        {"source": "settlement_check", "settled_batches": settled}
                    ),
                )
            )
            db.add(
                Payment(
                    order_id=held.order_id,
                    payment_method=PaymentMethod.CREDIT_CARD.value,
                    provider=PROVIDER_NAME,
                    transaction_id=gateway_txn_id,
                    amount=held.amount,
                    currency=settings.PAYMENT_CURRENCY,
                    status=PaymentStatus.COMPLETED.value,
                    paid_at=now,
                )
            )

            order = await db.get(Order, held.order_id)
            if order and order.status == OrderStatus.PENDING.value:
                order.status = OrderStatus.PROCESSING.value
            db.add(
                OrderNote(
                    order_id=held.order_id,
                    note=f"Authorize.Net payment {gateway_txn_id} settled; payment completed",
                    is_internal=True,
                )
            )
            await db.commit()
        except SQLAlchemyError as e:
            await db.rollback()
            logger.error(f"Settlement check failed for transaction {held.id}: {e}")
            results["errors"].append({"transaction_id": str(held.id), "error": str(e)})
            continue

        already_completed.add(gateway_txn_id)
        results["updated"] += 1

    logger.info(
        f"Settlement check completed: {results['updated']} held payments promoted, "
        f"{len(results['errors'])} errors"
    )
    return results


def register_settlement_job(scheduler):
    """Register the settlement check with APScheduler at the configured interval."""
    from orderflow.database import get_db_session

    async def job_wrapper():
        try:
            async with get_db_session() as db:
                await run_settlement_check(db)
        except Exception as e:
            logger.error(f"Settlement check job failed: {e}")

    scheduler.add_job(
        job_wrapper,
        'interval',
        minutes=settings.SETTLEMENT_CHECK_INTERVAL_MINUTES,
        id='settlement_check',
        name='Authorize.Net settlement check',
        replace_existing=True,
    )

    logger.info(
        f"Settlement check job registered to run every {settings.SETTLEMENT_CHECK_INTERVAL_MINUTES} minutes"
    )
