"""认证模块 FastAPI 路由"""

from fastapi import APIRouter, HTTPException, status

from src.auth.errors import ProviderError, UninitializedClientError
from src.auth.models import (
    AuthStatusResponse,
    ConfirmRequest,
    LoginRequest,
    LoginResponse,
    LogoutResponse,
    RegisterRequest,
    SignUpResult,
)
from src.auth.service import AuthService

router = APIRouter(prefix="/api/auth", tags=["认证"])


def get_auth_service() -> AuthService:
    """获取认证服务实例（依赖注入）"""
    from src.main import app_state

    if app_state is None or app_state.auth_service is None:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="认证服务未初始化",
        )

    return app_state.auth_service


def _provider_error(e: ProviderError) -> HTTPException:
    return HTTPException(
        status_code=status.HTTP_400_BAD_REQUEST,
        detail={"code": e.code, "message": e.message},
    )


def _uninitialized(e: UninitializedClientError) -> HTTPException:
    return HTTPException(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, detail=str(e))


@router.post("/register", response_model=SignUpResult)
async def register(request: RegisterRequest) -> SignUpResult:
    """注册新用户，确认码会发送到邮箱"""
    auth_service = get_auth_service()
    try:
        return await auth_service.register(request.username, request.password)
    except ProviderError as e:
        raise _provider_error(e)
    except UninitializedClientError as e:
        raise _uninitialized(e)


@router.post("/confirm")
async def confirm(request: ConfirmRequest):
    """提交注册确认码"""
    auth_service = get_auth_service()
    try:
        result = await auth_service.confirm_registration(request.username, request.code)
    except ProviderError as e:
        raise _provider_error(e)
    except UninitializedClientError as e:
        raise _uninitialized(e)
    return {"success": True, "result": result}


@router.post("/login", response_model=LoginResponse)
async def login(request: LoginRequest) -> LoginResponse:
    """登录，成功后令牌保存在本地存储"""
    auth_service = get_auth_service()
    try:
        session = await auth_service.authenticate(request.username, request.password)
    except ProviderError as e:
        raise _provider_error(e)
    except UninitializedClientError as e:
        raise _uninitialized(e)
    return LoginResponse(success=True, message="登录成功", id_token=session.id_token)


@router.post("/logout", response_model=LogoutResponse)
async def logout() -> LogoutResponse:
    """退出登录"""
    auth_service = get_auth_service()
    auth_service.sign_out()
    return LogoutResponse(success=True, message="已退出登录")


@router.get("/status", response_model=AuthStatusResponse)
async def get_auth_status() -> AuthStatusResponse:
    """获取认证状态"""
    auth_service = get_auth_service()
    user = auth_service.cognito_user
    return AuthStatusResponse(
        is_authenticated=auth_service.is_authenticated(),
        username=user.username if user else None,
    )


@router.get("/token")
async def get_access_token():
    """获取访问令牌（原样返回）"""
    auth_service = get_auth_service()
    token = auth_service.get_access_token()

    if token is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="未登录",
        )
    return {"token": token}
