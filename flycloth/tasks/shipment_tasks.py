import asyncio

from celery.utils.log import get_task_logger
from sqlalchemy.ext.asyncio import AsyncSession

from flycloth.core.celery_app import celery_app
from flycloth.db.session import async_session
from flycloth.services.easyparcel_client import easyparcel_client
from flycloth.services.shipment_service import shipment_service

# 使用 Celery 的标准日志记录器
logger = get_task_logger(__name__)


async def _run_sync_shipment_status() -> str:
    """
    核心异步逻辑：同步已支付运单的包裹状态
    """
    if not easyparcel_client.is_enabled():
        logger.warning("EasyParcel 未配置，跳过运单状态同步")
        return "EasyParcel 未配置"

    session: AsyncSession = async_session()
    try:
        delivered = await shipment_service.sync_paid_shipments(session, client=easyparcel_client)
        logger.info(f"运单状态同步完成，{delivered} 个订单已送达")
        return f"{delivered} 个订单已送达"
    except Exception:
        await session.rollback()
        logger.error("同步运单状态时发生异常，已回滚。", exc_info=True)
        raise
    finally:
        await session.close()


@celery_app.task
def sync_shipment_status_task():
    """
    同步的 Celery 任务，定期拉取 EasyParcel 包裹状态
    """
    logger.info("正在启动运单状态同步任务...")
    result = asyncio.run(_run_sync_shipment_status())
    logger.info(f"任务完成： {result}")
    return result
