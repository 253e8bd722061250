from celery import Celery
from celery.schedules import crontab

from flycloth.db import base  # noqa 使Worker启动时加载所有模型（先设置环境变量 RUNNING_IN_CELERY=true 再启动：celery -A flycloth.core.celery_app worker -l info）
from flycloth.core.config import settings

celery_app = Celery(
    "tasks",
    broker=settings.CELERY_BROKER_URL,
    backend=settings.CELERY_RESULT_BACKEND,
    include=["flycloth.tasks.shipment_tasks"],
)

celery_app.conf.update(
    task_track_started=True,
    timezone='Asia/Kuala_Lumpur',
    enable_utc=True,
)

# 设置 Celery Beat 调度器（另起终端：celery -A flycloth.core.celery_app beat -l info）
celery_app.conf.beat_schedule = {
    # 每30分钟同步一次已支付运单的包裹状态
    'sync-shipment-status-every-30-minutes': {
        'task': 'flycloth.tasks.shipment_tasks.sync_shipment_status_task',
        'schedule': crontab(minute='*/30'),
    },
}
