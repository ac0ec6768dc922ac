"""测试用的 User Pool 替身与辅助函数。"""

from __future__ import annotations

import asyncio
from typing import Any

from src.auth.config import CognitoConfig
from src.auth.provider import CognitoUserPool


class ScriptedPool(CognitoUserPool):
    """不发网络请求的 User Pool。

    responses 中预置的结果会立即返回（异常则抛出）；
    没有预置结果的请求会挂起，直到测试对 calls 中的 future 设置结果。
    """

    def __init__(self, config: CognitoConfig, storage):
        super().__init__(config, storage)
        self.responses: dict[str, list[Any]] = {}
        self.calls: list[tuple[str, dict, asyncio.Future]] = []

    def respond(self, action: str, result: Any) -> None:
        self.responses.setdefault(action, []).append(result)

    async def request(self, action: str, payload: dict[str, Any]) -> dict[str, Any]:
        future = asyncio.get_running_loop().create_future()
        self.calls.append((action, payload, future))
        queued = self.responses.get(action)
        if queued:
            result = queued.pop(0)
            if isinstance(result, Exception):
                raise result
            return result
        return await future


def auth_result(access: str, id_: str, refresh: str | None = "RT") -> dict:
    result = {"AccessToken": access, "IdToken": id_, "ExpiresIn": 3600, "TokenType": "Bearer"}
    if refresh:
        result["RefreshToken"] = refresh
    return {"AuthenticationResult": result}


async def wait_for_calls(pool: ScriptedPool, count: int) -> None:
    """让出事件循环，直到 pool 收到 count 个请求"""
    for _ in range(100):
        if len(pool.calls) >= count:
            return
        await asyncio.sleep(0)
    raise AssertionError(f"expected {count} provider calls, got {len(pool.calls)}")


