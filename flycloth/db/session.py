import os
from typing import AsyncGenerator

from sqlalchemy.ext.asyncio import create_async_engine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

from flycloth.core.config import settings

# 对于 Celery worker，使用 NullPool 来避免跨事件循环复用连接
# 对于主 FastAPI 应用程序，使用默认连接池
if os.environ.get("RUNNING_IN_CELERY") == "true":
    engine = create_async_engine(settings.DATABASE_URL, echo=settings.DB_ECHO, poolclass=NullPool)
else:
    engine = create_async_engine(settings.DATABASE_URL, echo=settings.DB_ECHO)

# 创建异步会话工厂
async_session = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


async def get_db() -> AsyncGenerator[AsyncSession, None]:
    """获取数据库会话的依赖函数"""
    async with async_session() as session:
        try:
            yield session
        finally:
            await session.close()


async def close_db_connection():
    """关闭数据库连接"""
    await engine.dispose()
