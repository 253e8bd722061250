import json
import logging

import aio_pika

from flycloth.core.config import settings

logger = logging.getLogger(__name__)


async def send_alert_to_queue(alert_data: dict) -> None:
    """发送低库存预警消息到RabbitMQ队列，失败只记录日志"""
    try:
        connection = await aio_pika.connect_robust(settings.RABBITMQ_URL)
        async with connection:
            channel = await connection.channel()
            queue = await channel.declare_queue(settings.LOW_STOCK_QUEUE, durable=True)
            await channel.default_exchange.publish(
                aio_pika.Message(
                    body=json.dumps(alert_data, default=str).encode(),
                    delivery_mode=aio_pika.DeliveryMode.PERSISTENT
                ),
                routing_key=queue.name
            )
    except Exception as e:
        logger.error(f"发送低库存预警消息失败: {e}")
