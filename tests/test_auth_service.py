"""AuthService 单元测试。"""

import asyncio

import pytest

from src.auth.errors import ProviderError, UninitializedClientError
from src.auth.models import ACCESS_TOKEN_KEY, ID_TOKEN_KEY, Credentials, SignUpResult
from tests.fakes import auth_result, wait_for_calls


async def test_authenticate_stores_tokens(auth_service, pool, storage):
    pool.respond("InitiateAuth", auth_result("AT1", "IT1"))

    session = await auth_service.authenticate("a@x.com", "pw")

    assert session.access_token == "AT1"
    assert session.id_token == "IT1"
    assert auth_service.is_authenticated()
    assert auth_service.get_access_token() == "AT1"
    assert auth_service.get_id_token() == "IT1"
    assert storage.get(ACCESS_TOKEN_KEY) == "AT1"
    assert storage.get(ID_TOKEN_KEY) == "IT1"
    assert auth_service.cognito_user.username == "a@x.com"

    action, payload, _ = pool.calls[0]
    assert action == "InitiateAuth"
    assert payload["AuthFlow"] == "USER_PASSWORD_AUTH"
    assert payload["AuthParameters"] == {"USERNAME": "a@x.com", "PASSWORD": "pw"}


async def test_authenticate_then_sign_out(auth_service, pool):
    pool.respond("InitiateAuth", auth_result("AT1", "IT1"))
    pool.respond("GlobalSignOut", {})

    await auth_service.authenticate("a@x.com", "pw")
    assert auth_service.get_access_token() == "AT1"

    auth_service.sign_out()

    assert auth_service.is_authenticated() is False
    assert auth_service.get_access_token() is None
    assert auth_service.get_id_token() is None
    assert auth_service.cognito_user is None
    assert pool.get_current_user() is None

    await pool.aclose()
    assert [c[0] for c in pool.calls] == ["InitiateAuth", "GlobalSignOut"]
    assert pool.calls[1][1] == {"AccessToken": "AT1"}


async def test_authenticate_failure_without_session(auth_service, pool):
    pool.respond("InitiateAuth", ProviderError("NotAuthorizedException", "Incorrect username or password."))

    with pytest.raises(ProviderError) as exc_info:
        await auth_service.authenticate("a@x.com", "wrong")

    assert exc_info.value.code == "NotAuthorizedException"
    assert auth_service.is_authenticated() is False
    assert auth_service.cognito_user is None


async def test_failed_reauthentication_keeps_existing_session(auth_service, pool, storage):
    pool.respond("InitiateAuth", auth_result("AT1", "IT1"))
    await auth_service.authenticate("a@x.com", "pw")
    first_user = auth_service.cognito_user

    error = ProviderError("NotAuthorizedException", "Incorrect username or password.")
    pool.respond("InitiateAuth", error)
    with pytest.raises(ProviderError) as exc_info:
        await auth_service.authenticate("b@x.com", "wrong")

    # 原样抛出，不做包装
    assert exc_info.value is error
    assert auth_service.is_authenticated()
    assert auth_service.get_credentials() == Credentials(access_token="AT1", id_token="IT1")
    assert auth_service.cognito_user is first_user


async def test_authenticate_uses_fresh_user(auth_service, pool):
    pool.respond("InitiateAuth", auth_result("AT1", "IT1"))
    pool.respond("InitiateAuth", auth_result("AT2", "IT2"))

    await auth_service.authenticate("a@x.com", "pw")
    first_user = auth_service.cognito_user
    await auth_service.authenticate("a@x.com", "pw")

    assert auth_service.cognito_user is not first_user
    assert auth_service.get_access_token() == "AT2"


async def test_concurrent_authenticate_last_completion_wins(auth_service, pool):
    first = asyncio.create_task(auth_service.authenticate("a@x.com", "pw-a"))
    second = asyncio.create_task(auth_service.authenticate("b@x.com", "pw-b"))
    await wait_for_calls(pool, 2)

    # 后发起的请求先完成，先发起的请求后完成
    pool.calls[1][2].set_result(auth_result("AT-B", "IT-B"))
    await second
    assert auth_service.get_access_token() == "AT-B"

    pool.calls[0][2].set_result(auth_result("AT-A", "IT-A"))
    await first

    assert auth_service.get_credentials() == Credentials(access_token="AT-A", id_token="IT-A")
    assert auth_service.cognito_user.username == "a@x.com"


async def test_concurrent_authenticate_failure_does_not_override(auth_service, pool):
    first = asyncio.create_task(auth_service.authenticate("a@x.com", "pw-a"))
    second = asyncio.create_task(auth_service.authenticate("b@x.com", "bad"))
    await wait_for_calls(pool, 2)

    pool.calls[0][2].set_result(auth_result("AT-A", "IT-A"))
    await first
    pool.calls[1][2].set_exception(ProviderError("NotAuthorizedException"))
    with pytest.raises(ProviderError):
        await second

    assert auth_service.get_credentials() == Credentials(access_token="AT-A", id_token="IT-A")
    assert auth_service.cognito_user.username == "a@x.com"


async def test_register_returns_provider_result(auth_service, pool):
    pool.respond(
        "SignUp",
        {
            "UserConfirmed": False,
            "UserSub": "sub-123",
            "CodeDeliveryDetails": {
                "Destination": "a***@x.com",
                "DeliveryMedium": "EMAIL",
                "AttributeName": "email",
            },
        },
    )

    result = await auth_service.register("a@x.com", "Passw0rd!")

    assert isinstance(result, SignUpResult)
    assert result.user_sub == "sub-123"
    assert result.user_confirmed is False
    assert result.code_delivery_details.delivery_medium == "EMAIL"
    action, payload, _ = pool.calls[0]
    assert action == "SignUp"
    assert payload["UserAttributes"] == []
    assert "ValidationData" not in payload
    assert auth_service.is_authenticated() is False


async def test_register_and_confirm_do_not_touch_session(auth_service, pool, storage):
    pool.respond("InitiateAuth", auth_result("AT1", "IT1"))
    await auth_service.authenticate("a@x.com", "pw")
    before = dict(storage._data)

    pool.respond("SignUp", {"UserConfirmed": False, "UserSub": "sub-1"})
    pool.respond("ConfirmSignUp", {})
    await auth_service.register("new@x.com", "pw")
    assert await auth_service.confirm_registration("new@x.com", "123456") == "SUCCESS"

    pool.respond("SignUp", ProviderError("UsernameExistsException"))
    pool.respond("ConfirmSignUp", ProviderError("CodeMismatchException"))
    with pytest.raises(ProviderError):
        await auth_service.register("new@x.com", "pw")
    with pytest.raises(ProviderError):
        await auth_service.confirm_registration("new@x.com", "000000")

    assert storage._data == before
    assert auth_service.get_access_token() == "AT1"
    assert auth_service.cognito_user.username == "a@x.com"


async def test_confirm_registration_request(auth_service, pool):
    pool.respond("ConfirmSignUp", {})

    await auth_service.confirm_registration("a@x.com", "123456")

    action, payload, _ = pool.calls[0]
    assert action == "ConfirmSignUp"
    assert payload["Username"] == "a@x.com"
    assert payload["ConfirmationCode"] == "123456"
    assert payload["ForceAliasCreation"] is True


def test_sign_out_without_session(auth_service):
    auth_service.sign_out()
    auth_service.sign_out()

    assert auth_service.is_authenticated() is False
    assert auth_service.get_access_token() is None


def test_is_authenticated_reads_storage(auth_service, storage):
    # 重启后只有存储中的令牌，没有当前用户对象
    storage.set_many({ACCESS_TOKEN_KEY: "persisted", ID_TOKEN_KEY: "persisted-id"})
    assert auth_service.cognito_user is None
    assert auth_service.is_authenticated()
    assert auth_service.get_access_token() == "persisted"

    # 外部清空存储后立即反映
    storage.remove(ACCESS_TOKEN_KEY)
    assert auth_service.is_authenticated() is False
    assert auth_service.get_credentials() is None


def test_get_access_token_is_verbatim(auth_service, storage):
    storage.set(ACCESS_TOKEN_KEY, "not-a-jwt")
    assert auth_service.get_access_token() == "not-a-jwt"


async def test_store_failure_keeps_previous_user(auth_service, pool, storage, monkeypatch):
    pool.respond("InitiateAuth", auth_result("AT1", "IT1"))
    await auth_service.authenticate("a@x.com", "pw")
    first_user = auth_service.cognito_user

    original_set_many = storage.set_many

    def failing_set_many(items):
        # 只让令牌写入失败，User Pool 缓存写入照常
        if ACCESS_TOKEN_KEY in items:
            raise OSError("disk full")
        original_set_many(items)

    monkeypatch.setattr(storage, "set_many", failing_set_many)
    pool.respond("InitiateAuth", auth_result("AT2", "IT2"))

    with pytest.raises(OSError):
        await auth_service.authenticate("b@x.com", "pw")

    assert auth_service.cognito_user is first_user
    assert auth_service.get_credentials() == Credentials(access_token="AT1", id_token="IT1")


async def test_store_failure_without_session(auth_service, pool, storage, monkeypatch):
    original_set_many = storage.set_many

    def failing_set_many(items):
        if ACCESS_TOKEN_KEY in items:
            raise OSError("disk full")
        original_set_many(items)

    monkeypatch.setattr(storage, "set_many", failing_set_many)
    pool.respond("InitiateAuth", auth_result("AT1", "IT1"))

    with pytest.raises(OSError):
        await auth_service.authenticate("a@x.com", "pw")

    assert auth_service.cognito_user is None
    assert auth_service.is_authenticated() is False


async def test_authenticate_completes_after_caller_timeout(auth_service, pool):
    with pytest.raises(asyncio.TimeoutError):
        await asyncio.wait_for(auth_service.authenticate("a@x.com", "pw"), timeout=0.01)
    await wait_for_calls(pool, 1)

    # 调用方已放弃等待，登录请求仍然完成
    pool.calls[0][2].set_result(auth_result("AT1", "IT1"))
    await pool.aclose()

    assert pool.get_current_user().username == "a@x.com"
    assert auth_service.is_authenticated()
    assert auth_service.get_access_token() == "AT1"
    assert auth_service.cognito_user.username == "a@x.com"


async def test_sign_out_after_close_clears_pool_cache(auth_service, pool, storage):
    pool.respond("InitiateAuth", auth_result("AT1", "IT1"))
    await auth_service.authenticate("a@x.com", "pw")
    await auth_service.close()

    auth_service.sign_out()

    assert auth_service.is_authenticated() is False
    assert pool.get_current_user() is None
    assert not [key for key in storage._data if key.startswith("CognitoIdentityServiceProvider.")]


async def test_operations_after_close_raise(auth_service):
    await auth_service.close()

    with pytest.raises(UninitializedClientError):
        await auth_service.authenticate("a@x.com", "pw")
    with pytest.raises(UninitializedClientError):
        await auth_service.register("a@x.com", "pw")
    with pytest.raises(UninitializedClientError):
        await auth_service.confirm_registration("a@x.com", "123456")

    # 登出仍可调用
    auth_service.sign_out()
    assert auth_service.is_authenticated() is False
