import asyncio
import json
import logging

import aio_pika
from aiosmtplib import SMTPException

from flycloth.core.config import settings
from flycloth.utils.email_utils import send_low_stock_email

# 配置日志
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger("alert_consumer")


async def process_alert(alert_data: dict) -> bool:
    """处理单条预警消息，记录日志并发邮件通知管理员"""
    logger.info(
        f"[低库存预警] 规格ID: {alert_data['variant_id']}, "
        f"商品: {alert_data.get('product_name')} ({alert_data.get('variant_info')}), "
        f"当前库存: {alert_data['current_stock']}"
    )

    try:
        sent = await send_low_stock_email(alert_data)
    except (SMTPException, OSError) as e:
        logger.error(f"发送邮件失败: {e}")
        return False

    if sent:
        logger.info("已发送邮件通知")
    else:
        logger.info("未配置预警收件人，跳过邮件")
    return sent


async def consume_alerts():
    """持续消费预警消息"""
    connection = await aio_pika.connect_robust(settings.RABBITMQ_URL)
    async with connection:
        channel = await connection.channel()
        queue = await channel.declare_queue(settings.LOW_STOCK_QUEUE, durable=True)

        logger.info(f"开始监听低库存预警队列: {queue.name}")

        async with queue.iterator() as queue_iter:
            async for message in queue_iter:
                try:
                    alert_data = json.loads(message.body.decode())
                    await process_alert(alert_data)
                    await message.ack()
                except (ValueError, KeyError) as e:
                    logger.error(f"处理预警失败: {e}")
                    await message.nack(requeue=False)


if __name__ == "__main__":
    asyncio.run(consume_alerts())
