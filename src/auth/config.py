"""认证配置：Cognito User Pool 参数，从 YAML 加载，可由环境变量覆盖。

配置文件示例（config/cognito.yaml）：

    user_pool_id: ap-northeast-1_AbCdEfGhI
    client_id: 1example23456789
    storage_path: data/credentials.json
"""

from __future__ import annotations

import logging
import os
from pathlib import Path

import yaml
from pydantic import BaseModel, ConfigDict, Field, field_validator

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_PATH = "config/cognito.yaml"

# 环境变量 -> 配置字段
_ENV_OVERRIDES = {
    "COGNITO_USER_POOL_ID": "user_pool_id",
    "COGNITO_CLIENT_ID": "client_id",
    "COGNITO_ENDPOINT": "endpoint",
    "AUTH_STORAGE_PATH": "storage_path",
}


class CognitoConfig(BaseModel):
    """User Pool 配置，构造后不可修改"""

    model_config = ConfigDict(frozen=True)

    user_pool_id: str = Field(..., description="User Pool ID，格式 <region>_<id>")
    client_id: str = Field(..., min_length=1, description="App Client ID")
    endpoint: str | None = Field(None, description="自定义服务地址，留空则按 region 推导")
    request_timeout: float = Field(30.0, gt=0, description="单次请求超时（秒）")
    storage_path: str = Field("data/credentials.json", description="凭证文件路径")

    @field_validator("user_pool_id")
    @classmethod
    def _check_pool_id(cls, value: str) -> str:
        region, sep, pool = value.partition("_")
        if not sep or not region or not pool:
            raise ValueError(f"User Pool ID 格式错误: {value!r}")
        return value

    @property
    def region(self) -> str:
        """从 User Pool ID 推导的 AWS 区域"""
        return self.user_pool_id.split("_", 1)[0]

    @property
    def service_url(self) -> str:
        """Cognito Identity Provider 服务地址"""
        return self.endpoint or f"https://cognito-idp.{self.region}.amazonaws.com/"


def load_cognito_config(path: str = DEFAULT_CONFIG_PATH) -> CognitoConfig:
    """读取 YAML 配置并应用环境变量覆盖；文件可以不存在（仅用环境变量）"""
    data: dict = {}
    config_path = Path(path)
    if config_path.exists():
        with open(config_path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        logger.info(f"[CognitoConfig] 已加载配置文件: {config_path}")
    else:
        logger.warning(f"[CognitoConfig] 配置文件不存在: {path}")

    for env_name, field_name in _ENV_OVERRIDES.items():
        value = (os.getenv(env_name, "") or "").strip()
        if value:
            data[field_name] = value

    return CognitoConfig(**data)
