"""Cognito 身份提供方客户端：回调风格的 User Pool / User 接口。

与浏览器端 SDK 的调用方式保持一致：每个操作立即返回，请求在事件循环中后台执行，
完成后调用 callback(err, result) 或 AuthCallbacks 中的 on_success / on_failure。

底层协议为 Cognito Identity Provider 的 JSON API：
    POST https://cognito-idp.<region>.amazonaws.com/
    X-Amz-Target: AWSCognitoIdentityProviderService.<Action>

登录成功后，User Pool 会在 CredentialStore 中缓存会话（LastAuthUser 及各令牌），
get_current_user() 依据该缓存返回当前用户。
"""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable

import httpx

from src.auth.config import CognitoConfig
from src.auth.errors import ProviderError
from src.auth.models import (
    AuthCallbacks,
    AuthenticationDetails,
    CodeDeliveryDetails,
    CognitoUserSession,
    NodeCallback,
    SignUpResult,
)
from src.auth.storage import CredentialStore

logger = logging.getLogger(__name__)

TARGET_PREFIX = "AWSCognitoIdentityProviderService"
CONTENT_TYPE = "application/x-amz-json-1.1"
STORAGE_PREFIX = "CognitoIdentityServiceProvider"


class CognitoUserPool:
    """User Pool 客户端，持有配置、HTTP 连接与会话缓存"""

    def __init__(
        self,
        config: CognitoConfig,
        storage: CredentialStore,
        http_client: httpx.AsyncClient | None = None,
    ):
        """
        Args:
            config: User Pool 配置
            storage: 会话缓存所用的存储
            http_client: 可选的 HTTP 客户端（测试时注入 MockTransport）
        """
        self.config = config
        self.storage = storage
        self._client = http_client
        self._tasks: set[asyncio.Task] = set()

    @property
    def user_pool_id(self) -> str:
        return self.config.user_pool_id

    @property
    def client_id(self) -> str:
        return self.config.client_id

    @property
    def last_user_key(self) -> str:
        return f"{STORAGE_PREFIX}.{self.client_id}.LastAuthUser"

    def sign_up(
        self,
        username: str,
        password: str,
        user_attributes: list[dict[str, str]] | None,
        validation_data: list[dict[str, str]] | None,
        callback: NodeCallback,
    ) -> None:
        """注册新用户，完成后回调 callback(err, SignUpResult)"""
        payload: dict[str, Any] = {
            "ClientId": self.client_id,
            "Username": username,
            "Password": password,
            "UserAttributes": list(user_attributes or []),
        }
        if validation_data:
            payload["ValidationData"] = list(validation_data)

        async def run() -> SignUpResult:
            data = await self.request("SignUp", payload)
            delivery = data.get("CodeDeliveryDetails")
            return SignUpResult(
                user_confirmed=bool(data.get("UserConfirmed", False)),
                user_sub=data.get("UserSub", ""),
                code_delivery_details=CodeDeliveryDetails(
                    destination=delivery.get("Destination"),
                    delivery_medium=delivery.get("DeliveryMedium"),
                    attribute_name=delivery.get("AttributeName"),
                )
                if delivery
                else None,
            )

        self.spawn(run, _node_success(callback), _node_failure(callback))

    def get_current_user(self) -> CognitoUser | None:
        """根据会话缓存返回最近一次登录的用户，没有则返回 None"""
        username = self.storage.get(self.last_user_key)
        if not username:
            return None
        return CognitoUser(username, self)

    async def request(self, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        """调用一次 Cognito API，失败时抛出 ProviderError"""
        client = self._get_client()
        try:
            response = await client.post(
                self.config.service_url,
                json=payload,
                headers={
                    "Content-Type": CONTENT_TYPE,
                    "X-Amz-Target": f"{TARGET_PREFIX}.{action}",
                },
                timeout=self.config.request_timeout,
            )
        except httpx.HTTPError as e:
            logger.error(f"[CognitoUserPool] {action} 请求失败: {e}")
            raise ProviderError("NetworkError", str(e)) from e

        if response.status_code >= 400:
            raise _parse_error(response)

        if not response.content:
            return {}
        return response.json()

    def spawn(
        self,
        run: Callable[[], Awaitable[Any]],
        on_success: Callable[[Any], None],
        on_failure: Callable[[Exception], None],
    ) -> None:
        """在当前事件循环中后台执行 run()，结束后恰好调用一次 on_success 或 on_failure"""

        async def runner() -> None:
            try:
                result = await run()
            except Exception as e:
                on_failure(e)
                return
            on_success(result)

        task = asyncio.get_running_loop().create_task(runner())
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def aclose(self) -> None:
        """等待后台请求结束并关闭 HTTP 客户端"""
        if self._tasks:
            await asyncio.gather(*self._tasks, return_exceptions=True)
        if self._client is not None:
            await self._client.aclose()
            self._client = None

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient(timeout=self.config.request_timeout)
        return self._client


class CognitoUser:
    """User Pool 中的一个用户（按用户名区分）"""

    def __init__(self, username: str, pool: CognitoUserPool):
        self.username = username
        self.pool = pool

    def _key(self, name: str) -> str:
        return f"{STORAGE_PREFIX}.{self.pool.client_id}.{self.username}.{name}"

    def confirm_registration(self, code: str, force_alias_creation: bool, callback: NodeCallback) -> None:
        """提交确认码，成功时回调结果 "SUCCESS" """
        payload = {
            "ClientId": self.pool.client_id,
            "Username": self.username,
            "ConfirmationCode": code,
            "ForceAliasCreation": force_alias_creation,
        }

        async def run() -> str:
            await self.pool.request("ConfirmSignUp", payload)
            return "SUCCESS"

        self.pool.spawn(run, _node_success(callback), _node_failure(callback))

    def authenticate_user(self, details: AuthenticationDetails, callbacks: AuthCallbacks) -> None:
        """使用用户名密码登录（USER_PASSWORD_AUTH），成功后缓存会话并回调 on_success"""
        payload = {
            "AuthFlow": "USER_PASSWORD_AUTH",
            "ClientId": self.pool.client_id,
            "AuthParameters": {
                "USERNAME": details.username,
                "PASSWORD": details.password,
            },
        }

        async def run() -> CognitoUserSession:
            data = await self.pool.request("InitiateAuth", payload)
            result = data.get("AuthenticationResult")
            if not result:
                challenge = data.get("ChallengeName") or "UnknownChallenge"
                raise ProviderError(challenge, "不支持的登录挑战")
            session = CognitoUserSession(
                access_token=result["AccessToken"],
                id_token=result["IdToken"],
                refresh_token=result.get("RefreshToken"),
                expires_in=result.get("ExpiresIn"),
                token_type=result.get("TokenType"),
            )
            self.cache_session(session)
            return session

        self.pool.spawn(run, callbacks.on_success, callbacks.on_failure)

    def cache_session(self, session: CognitoUserSession) -> None:
        """把会话写入 User Pool 缓存，并记为最近登录用户"""
        items = {
            self._key("accessToken"): session.access_token,
            self._key("idToken"): session.id_token,
            self.pool.last_user_key: self.username,
        }
        if session.refresh_token:
            items[self._key("refreshToken")] = session.refresh_token
        self.pool.storage.set_many(items)

    def clear_cached_session(self) -> None:
        """删除该用户在 User Pool 缓存中的会话"""
        keys = [self._key("accessToken"), self._key("idToken"), self._key("refreshToken")]
        if self.pool.storage.get(self.pool.last_user_key) == self.username:
            keys.append(self.pool.last_user_key)
        self.pool.storage.remove_many(keys)

    def sign_out(self) -> None:
        """清除本地会话缓存，并在后台尽力请求服务端注销（失败只记日志）"""
        access_token = self.pool.storage.get(self._key("accessToken"))
        self.clear_cached_session()
        if not access_token:
            return

        try:
            asyncio.get_running_loop()
        except RuntimeError:
            logger.info(f"[CognitoUser] 无运行中的事件循环，跳过服务端注销: {self.username}")
            return

        async def run() -> None:
            await self.pool.request("GlobalSignOut", {"AccessToken": access_token})

        def on_failure(error: Exception) -> None:
            logger.warning(f"[CognitoUser] 服务端注销失败: {error}")

        self.pool.spawn(run, lambda _: logger.info(f"[CognitoUser] 服务端已注销: {self.username}"), on_failure)


def _node_success(callback: NodeCallback) -> Callable[[Any], None]:
    return lambda result: callback(None, result)


def _node_failure(callback: NodeCallback) -> Callable[[Exception], None]:
    return lambda error: callback(error, None)


def _parse_error(response: httpx.Response) -> ProviderError:
    """把 Cognito 错误响应转换为 ProviderError"""
    try:
        body = response.json()
    except ValueError:
        body = {}
    if not isinstance(body, dict):
        body = {}
    # __type 可能带命名空间前缀，如 com.amazonaws...#NotAuthorizedException
    code = str(body.get("__type") or f"HTTP{response.status_code}").rsplit("#", 1)[-1]
    message = body.get("message") or body.get("Message") or response.reason_phrase
    return ProviderError(code, message)
