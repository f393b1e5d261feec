# shopcore/tasks/expire.py
from shopcore.celery_worker import celery_app
from shopcore.data.database import SessionLocal
from shopcore.services.cart_service import CartService
from shopcore.services.product_client import HttpStockOracle
from shopcore.utils.retry import transient_retry
from shopcore.utils.settings import CART_ABANDON_SECONDS
from shopcore.utils.logging import get_logger

logger = get_logger(__name__)


@transient_retry()
def sweep_carts(session_factory=SessionLocal, abandon_after_seconds: int = CART_ABANDON_SECONDS) -> dict:
    db = session_factory()
    try:
        #the sweep never prices anything, the oracle is only a constructor requirement
        service = CartService(db, stock_oracle=HttpStockOracle())
        return service.expire_stale_carts(abandon_after_seconds)
    finally:
        db.close()


@celery_app.task(name="shopcore.tasks.expire.expire_carts_task")
def expire_carts_task():
    logger.info("Expire carts task started")
    result = sweep_carts()
    logger.info(f"Expire carts task finished: {result}")
    return result
