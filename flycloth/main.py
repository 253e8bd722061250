import logging
from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from flycloth.api.v1.api import api_router
from flycloth.core.config import settings
from flycloth.db.session import close_db_connection

# 配置日志
logging.basicConfig(
    level=logging.DEBUG if settings.DEBUG else logging.INFO,
    format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    handlers=[logging.StreamHandler()]
)
logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(_app: FastAPI):
    """
    应用生命周期管理器
    """
    logger.info("应用启动...")
    yield
    logger.info("应用关闭...")
    await close_db_connection()
    logger.info("数据库连接已关闭")


app = FastAPI(
    title=settings.PROJECT_NAME,
    description="基于FastAPI的服装商城 API",
    version="0.1.0",
    lifespan=lifespan,
)

# 配置CORS，前端站点已配置时只放行该来源
app.add_middleware(
    CORSMiddleware,  # type: ignore
    allow_origins=[settings.APP_URL] if settings.APP_URL else ["*"],
    allow_credentials=bool(settings.APP_URL),
    allow_methods=["*"],
    allow_headers=["*"],
)


# 根路由
@app.get("/")
async def root():
    return {"message": "Welcome to the FlyCloth API!"}


# 健康检查
@app.get("/health")
async def health_check():
    return {"status": "healthy"}


# 注册API路由
app.include_router(api_router, prefix=settings.API_V1_STR)
