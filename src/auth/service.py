"""认证服务核心类：把 Cognito 的回调接口转换为 async 接口，并管理本地令牌。

登录状态不单独缓存，始终由 CredentialStore 中是否存在 accessToken 决定。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any

import httpx

from src.auth.config import CognitoConfig
from src.auth.errors import UninitializedClientError
from src.auth.models import (
    ACCESS_TOKEN_KEY,
    ID_TOKEN_KEY,
    AuthCallbacks,
    AuthenticationDetails,
    CognitoUserSession,
    Credentials,
    SignUpResult,
)
from src.auth.provider import CognitoUser, CognitoUserPool
from src.auth.storage import CredentialStore

logger = logging.getLogger(__name__)


class AuthService:
    """认证服务类，负责注册、确认、登录、登出与令牌读取"""

    def __init__(
        self,
        config: CognitoConfig,
        storage: CredentialStore,
        http_client: httpx.AsyncClient | None = None,
    ):
        """初始化认证服务

        Args:
            config: User Pool 配置，构造后不再修改
            storage: 令牌存储
            http_client: 可选的 HTTP 客户端，交给 User Pool 使用
        """
        self.config = config
        self.storage = storage
        self.cognito_user: CognitoUser | None = None
        self.user_pool: CognitoUserPool | None = None
        self._http_client = http_client
        self.initialize_user_pool()

    def initialize_user_pool(self) -> None:
        """创建 User Pool 客户端，仅在构造时调用一次"""
        self.user_pool = CognitoUserPool(self.config, self.storage, http_client=self._http_client)
        logger.info(f"[AuthService] User Pool 已初始化: {self.config.user_pool_id}")

    async def close(self) -> None:
        """关闭 User Pool 客户端，之后的认证操作会抛出 UninitializedClientError"""
        if self.user_pool is not None:
            await self.user_pool.aclose()
            self.user_pool = None

    async def register(self, username: str, password: str) -> SignUpResult:
        """注册新用户，不修改本地状态

        Raises:
            ProviderError: 提供方返回的失败原因（原样抛出）
        """
        pool = self._require_pool()
        future = self._new_future()
        pool.sign_up(username, password, [], None, _settle(future))
        result = await future
        logger.info(f"[AuthService] 注册成功: {username}")
        return result

    async def confirm_registration(self, username: str, code: str) -> str:
        """提交注册确认码，不修改本地状态"""
        pool = self._require_pool()
        future = self._new_future()
        user = CognitoUser(username, pool)
        user.confirm_registration(code, True, _settle(future))
        result = await future
        logger.info(f"[AuthService] 注册确认成功: {username}")
        return result

    async def authenticate(self, username: str, password: str) -> CognitoUserSession:
        """登录；成功后记录当前用户并保存 accessToken / idToken

        并发调用不做串行化：最后完成的一次覆盖存储与当前用户。
        失败时不修改任何本地状态，已保存的令牌保持不变。
        """
        pool = self._require_pool()
        future = self._new_future()
        details = AuthenticationDetails(username=username, password=password)
        user = CognitoUser(username, pool)

        def on_success(session: CognitoUserSession) -> None:
            # 调用方超时取消后仍写入令牌，保持与 User Pool 缓存一致
            try:
                # 两个令牌一次写入，成功后才切换当前用户
                self.storage.set_many(session.credentials().to_storage())
            except Exception as e:
                if not future.done():
                    future.set_exception(e)
                return
            self.cognito_user = user
            if not future.done():
                future.set_result(session)

        def on_failure(error: Exception) -> None:
            if not future.done():
                future.set_exception(error)

        user.authenticate_user(details, AuthCallbacks(on_success=on_success, on_failure=on_failure))
        session = await future
        logger.info(f"[AuthService] 登录成功: {username}")
        return session

    def sign_out(self) -> None:
        """登出：尽力注销服务端会话，然后清除本地令牌与当前用户，可重复调用"""
        if self.user_pool is not None:
            try:
                current_user = self.user_pool.get_current_user()
                if current_user:
                    current_user.sign_out()
            except Exception as e:
                logger.warning(f"[AuthService] 服务端注销失败（已忽略）: {e}")
        else:
            # User Pool 已关闭：只清除本地会话缓存
            current_user = CognitoUserPool(self.config, self.storage).get_current_user()
            if current_user:
                current_user.clear_cached_session()

        self.storage.remove_many([ACCESS_TOKEN_KEY, ID_TOKEN_KEY])
        self.cognito_user = None
        logger.info("[AuthService] 已退出登录")

    def is_authenticated(self) -> bool:
        """是否已登录：仅看存储中是否有 accessToken"""
        return self.storage.get(ACCESS_TOKEN_KEY) is not None

    def get_access_token(self) -> str | None:
        """获取访问令牌（原样返回，不做校验）"""
        return self.storage.get(ACCESS_TOKEN_KEY)

    def get_id_token(self) -> str | None:
        """获取身份令牌（原样返回，不做校验）"""
        return self.storage.get(ID_TOKEN_KEY)

    def get_credentials(self) -> Credentials | None:
        """两个令牌都存在时返回凭证"""
        access_token = self.get_access_token()
        id_token = self.get_id_token()
        if access_token is None or id_token is None:
            return None
        return Credentials(access_token=access_token, id_token=id_token)

    def _require_pool(self) -> CognitoUserPool:
        if self.user_pool is None:
            raise UninitializedClientError()
        return self.user_pool

    @staticmethod
    def _new_future() -> asyncio.Future:
        return asyncio.get_running_loop().create_future()


def _settle(future: asyncio.Future):
    """生成 callback(err, result)，把结果写入 future；只生效一次"""

    def callback(err: Exception | None, result: Any) -> None:
        if future.done():
            return
        if err is not None:
            future.set_exception(err)
        else:
            future.set_result(result)

    return callback
