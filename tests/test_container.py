import importlib
from datetime import timedelta

import pytest
from sqlalchemy import inspect

from sessionguard import main as main_module
from sessionguard.main import parse_args
from sessionguard.service.container import build_services
from sessionguard.service.token_service import TokenService
from sessionguard.utils import config as config_module
from sessionguard.utils.config import Config, DEFAULT_JWT_SECRET
from sessionguard.utils.errors import (
    AuthError,
    ConflictError,
    DependencyError,
    NotFoundError,
    ServiceError,
    ValidationError,
)


def test_build_services_creates_schema(services):
    tables = set(inspect(services.engine).get_table_names())
    assert {"users", "user_sessions", "verification_codes", "upgrade_keys"} <= tables


def test_services_share_one_registry(services):
    assert services.sessions.channels is services.channels
    assert services.auth.token_service is services.tokens


def test_build_services_is_idempotent_on_existing_database(tmp_path, sent_mail):
    url = f"sqlite:///{tmp_path / 'twice.db'}"
    first = build_services(database_url=url, jwt_secret="x" * 40)
    first.auth.create_user("Alice", "a@x.com", "pw1")
    first.engine.dispose()

    second = build_services(database_url=url, jwt_secret="x" * 40)
    assert second.auth.get_user_by_email("a@x.com") is not None
    second.engine.dispose()


def test_error_status_codes():
    assert AuthError("x").status_code == 401
    assert NotFoundError("x").status_code == 404
    assert ValidationError("x").status_code == 400
    assert ConflictError("x").status_code == 409
    assert ConflictError("x", status_code=400).status_code == 400
    assert DependencyError("x").status_code == 502
    assert isinstance(DependencyError("x"), ServiceError)


def test_config_defaults():
    assert Config.LOGIN_TOKEN_TTL_HOURS == 48
    assert Config.RESET_TOKEN_TTL_HOURS == 1
    assert Config.VERIFICATION_CODE_TTL_MINUTES == 15
    assert Config.PREMIUM_PRICE_CENTS == 200


def test_parse_args():
    args = parse_args(["--port", "8080", "--log-level", "DEBUG"])
    assert args.port == 8080
    assert args.log_level == "DEBUG"
    assert args.host == Config.HOST


def test_empty_secret_falls_back_to_default(monkeypatch):
    monkeypatch.setenv("JWT_SECRET_KEY", "")
    try:
        reloaded = importlib.reload(config_module)
        assert reloaded.Config.JWT_SECRET_KEY == DEFAULT_JWT_SECRET
    finally:
        monkeypatch.undo()
        importlib.reload(config_module)


def test_tokens_still_work_with_fallback_secret():
    tokens = TokenService(secret_key="")
    token = tokens.issue(1, "a@x.com", timedelta(minutes=5))
    assert tokens.verify(token) == {"id": 1, "email": "a@x.com"}


@pytest.mark.parametrize("secret", ["", DEFAULT_JWT_SECRET])
def test_main_refuses_insecure_secret(mocker, secret):
    mocker.patch.object(main_module.Config, "JWT_SECRET_KEY", secret)
    run = mocker.patch("sessionguard.main.uvicorn.run")
    mocker.patch("sessionguard.main.create_app")

    with pytest.raises(SystemExit):
        main_module.main([])
    run.assert_not_called()


def test_main_starts_with_configured_secret(mocker):
    mocker.patch.object(main_module.Config, "JWT_SECRET_KEY", "a" * 64)
    run = mocker.patch("sessionguard.main.uvicorn.run")
    app = mocker.patch("sessionguard.main.create_app")

    main_module.main(["--port", "9000"])

    assert run.call_args.args == (app.return_value,)
    assert run.call_args.kwargs["port"] == 9000
    assert run.call_args.kwargs["ws"] == "websockets"
