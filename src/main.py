"""Cognito Session：FastAPI 入口。

本模块负责：
- 应用启动与生命周期（lifespan）
- 认证服务的唯一实例创建与注入
- 注册认证路由与中间件
"""

from __future__ import annotations

import logging
import os
from contextlib import asynccontextmanager
from dataclasses import dataclass

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from src.auth.config import DEFAULT_CONFIG_PATH, load_cognito_config
from src.auth.routes import router as auth_router
from src.auth.service import AuthService
from src.auth.storage import FileCredentialStore

# 配置根日志格式，便于排查问题
logging.basicConfig(level=logging.INFO, format="%(asctime)s [%(name)s] %(levelname)s: %(message)s")
logger = logging.getLogger(__name__)


@dataclass
class AppState:
    """全局应用状态，持有认证服务的唯一实例。

    供路由模块通过 main.app_state 访问，避免循环依赖。
    """

    auth_service: AuthService


# 全局状态（供路由模块导入使用）；仅在 lifespan 中赋值一次
app_state: AppState | None = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """应用生命周期管理：启动时创建认证服务，关闭时释放 HTTP 连接。"""
    global app_state

    logger.info("Starting Cognito Session...")

    config = load_cognito_config(os.getenv("COGNITO_CONFIG", DEFAULT_CONFIG_PATH))
    storage = FileCredentialStore(config.storage_path)
    auth_service = AuthService(config=config, storage=storage)

    app_state = AppState(auth_service=auth_service)
    logger.info(f"Cognito Session started. authenticated={auth_service.is_authenticated()}")

    yield

    logger.info("Shutting down Cognito Session...")
    await auth_service.close()


# 创建 FastAPI 应用并绑定生命周期
app = FastAPI(
    title="Cognito Session",
    description="Client-side session manager for AWS Cognito user pools",
    version="0.1.0",
    lifespan=lifespan,
)

# 允许跨域，便于前端页面调用
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(auth_router)


@app.get("/")
async def root():
    """根路径：返回应用名称、版本与运行状态。"""
    return {"name": "Cognito Session", "version": "0.1.0", "status": "running"}


@app.get("/api/health")
async def health():
    """健康检查：返回认证服务是否就绪。"""
    return {
        "status": "ok",
        "auth_ready": app_state is not None,
    }
