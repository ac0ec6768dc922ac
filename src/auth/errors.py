"""认证模块异常定义"""

from __future__ import annotations


class AuthError(Exception):
    """认证模块异常基类"""


class ProviderError(AuthError):
    """身份提供方（Cognito）返回的失败原因，原样向调用方传递。

    Attributes:
        code: 提供方定义的错误类型，如 NotAuthorizedException
        message: 提供方返回的错误描述
    """

    def __init__(self, code: str, message: str = ""):
        super().__init__(f"{code}: {message}" if message else code)
        self.code = code
        self.message = message


class UninitializedClientError(AuthError):
    """User Pool 尚未初始化（或已关闭）时调用认证操作"""

    def __init__(self, message: str = "User Pool 未初始化"):
        super().__init__(message)
