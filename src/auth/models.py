"""认证模块数据模型定义"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Callable

from pydantic import BaseModel, ConfigDict, Field

from src.auth.errors import ProviderError

# CredentialStore 中保存令牌使用的固定键
ACCESS_TOKEN_KEY = "accessToken"
ID_TOKEN_KEY = "idToken"


class Credentials(BaseModel):
    """会话凭证：访问令牌与身份令牌，总是成对出现"""

    model_config = ConfigDict(frozen=True)

    access_token: str = Field(..., description="访问令牌，原样保存")
    id_token: str = Field(..., description="身份令牌，原样保存")

    def to_storage(self) -> dict[str, str]:
        """转换为 CredentialStore 的键值对"""
        return {ACCESS_TOKEN_KEY: self.access_token, ID_TOKEN_KEY: self.id_token}


class CodeDeliveryDetails(BaseModel):
    """确认码投递信息"""

    destination: str | None = Field(None, description="投递目标（已脱敏）")
    delivery_medium: str | None = Field(None, description="投递方式：EMAIL / SMS")
    attribute_name: str | None = Field(None, description="对应的用户属性")


class SignUpResult(BaseModel):
    """注册结果"""

    user_confirmed: bool = Field(False, description="用户是否已确认")
    user_sub: str = Field("", description="用户唯一标识")
    code_delivery_details: CodeDeliveryDetails | None = Field(None, description="确认码投递信息")


class CognitoUserSession(BaseModel):
    """登录成功后提供方返回的会话"""

    access_token: str = Field(..., description="访问令牌")
    id_token: str = Field(..., description="身份令牌")
    refresh_token: str | None = Field(None, description="刷新令牌")
    expires_in: int | None = Field(None, description="访问令牌有效期（秒）")
    token_type: str | None = Field(None, description="令牌类型")

    def credentials(self) -> Credentials:
        """提取需要持久化的凭证"""
        return Credentials(access_token=self.access_token, id_token=self.id_token)


class AuthenticationDetails(BaseModel):
    """登录请求参数"""

    username: str = Field(..., description="用户名（邮箱）")
    password: str = Field(..., description="密码")


# callback(err, result)：二者有且仅有一个非 None
NodeCallback = Callable[[ProviderError | None, object], None]


@dataclass
class AuthCallbacks:
    """authenticate_user 的回调对"""

    on_success: Callable[[CognitoUserSession], None]
    on_failure: Callable[[ProviderError], None]


class RegisterRequest(BaseModel):
    """注册请求"""

    username: str = Field(..., min_length=1, description="用户名（邮箱）")
    password: str = Field(..., min_length=1, description="密码")


class ConfirmRequest(BaseModel):
    """注册确认请求"""

    username: str = Field(..., min_length=1, description="用户名（邮箱）")
    code: str = Field(..., min_length=1, description="确认码")


class LoginRequest(BaseModel):
    """登录请求"""

    username: str = Field(..., min_length=1, description="用户名（邮箱）")
    password: str = Field(..., min_length=1, description="密码")


class LoginResponse(BaseModel):
    """登录响应"""

    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="响应消息")
    id_token: str | None = Field(None, description="身份令牌")


class LogoutResponse(BaseModel):
    """登出响应"""

    success: bool = Field(..., description="是否成功")
    message: str = Field(..., description="响应消息")


class AuthStatusResponse(BaseModel):
    """认证状态响应"""

    is_authenticated: bool
    username: str | None = None
