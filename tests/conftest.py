"""测试公共夹具。"""

import pytest

from src.auth.config import CognitoConfig
from src.auth.service import AuthService
from src.auth.storage import MemoryCredentialStore
from tests.fakes import ScriptedPool


@pytest.fixture
def cognito_config(tmp_path):
    return CognitoConfig(
        user_pool_id="ap-northeast-1_TestPool",
        client_id="test-client",
        storage_path=str(tmp_path / "credentials.json"),
    )


@pytest.fixture
def storage():
    return MemoryCredentialStore()


@pytest.fixture
def pool(cognito_config, storage):
    return ScriptedPool(cognito_config, storage)


@pytest.fixture
def auth_service(cognito_config, storage, pool):
    service = AuthService(config=cognito_config, storage=storage)
    service.user_pool = pool
    return service
