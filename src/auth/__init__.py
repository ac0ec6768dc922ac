"""认证模块 - Cognito User Pool 客户端会话管理

主要功能：
- 注册 / 注册确认
- 用户登录/登出
- 令牌本地持久化（accessToken / idToken）
- 认证状态查询
"""

from src.auth.config import CognitoConfig, load_cognito_config
from src.auth.errors import AuthError, ProviderError, UninitializedClientError
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
from src.auth.service import AuthService
from src.auth.storage import CredentialStore, FileCredentialStore, MemoryCredentialStore

__all__ = [
    "ACCESS_TOKEN_KEY",
    "ID_TOKEN_KEY",
    "AuthCallbacks",
    "AuthError",
    "AuthService",
    "AuthenticationDetails",
    "CognitoConfig",
    "CognitoUser",
    "CognitoUserPool",
    "CognitoUserSession",
    "CredentialStore",
    "Credentials",
    "FileCredentialStore",
    "MemoryCredentialStore",
    "ProviderError",
    "SignUpResult",
    "UninitializedClientError",
    "load_cognito_config",
]
