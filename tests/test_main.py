"""Tests for the process entry point."""

from unittest.mock import AsyncMock, MagicMock

import pytest

from gh_notif_bridge import main as main_module
from gh_notif_bridge.core.config import AccountConfig, AppConfig
from tests.conftest import BOT_USER_ID


@pytest.fixture(autouse=True)
def no_logging_setup(mocker):
    return mocker.patch.object(main_module, "configure_logging")


@pytest.fixture
def app_config():
    return AppConfig(
        matrix_hs_url="https://matrix.example.org",
        matrix_access_token="syt_test",
        accounts={
            name: AccountConfig(name=name, github_token=f"ghp_{name}", matrix_room_id=f"!{name}:x")
            for name in ("work", "personal")
        },
    )


def fake_worker(name, run):
    worker = MagicMock()
    worker.account.name = name
    worker.run = run
    worker.close = AsyncMock()
    return worker


def test_missing_config_exits_with_error(tmp_path):
    assert main_module.main(["--config", str(tmp_path / "nope.yaml")]) == 1


def test_worker_crash_exits_with_error(mocker, app_config):
    mocker.patch.object(main_module, "load_config", return_value=app_config)
    mocker.patch.object(main_module, "run", AsyncMock(side_effect=RuntimeError("boom")))

    assert main_module.main(["--config", "config.yaml"]) == 1


@pytest.mark.asyncio
async def test_run_starts_one_worker_per_account(mocker, app_config, test_settings):
    mocker.patch.object(main_module, "resolve_bot_user_id", AsyncMock(return_value=BOT_USER_ID))
    workers = {
        "work": fake_worker("work", AsyncMock(return_value=None)),
        "personal": fake_worker("personal", AsyncMock(return_value=None)),
    }
    create = mocker.patch.object(
        main_module,
        "create_worker",
        side_effect=lambda account, *args, **kwargs: workers[account.name],
    )

    await main_module.run(app_config, test_settings)

    assert create.call_count == 2
    for worker in workers.values():
        worker.run.assert_awaited_once()
        worker.close.assert_awaited_once()
    assert create.call_args_list[0].args[2] == BOT_USER_ID


@pytest.mark.asyncio
async def test_one_crashed_worker_stops_the_group(mocker, app_config, test_settings):
    mocker.patch.object(main_module, "resolve_bot_user_id", AsyncMock(return_value=BOT_USER_ID))
    crashed = fake_worker("work", AsyncMock(side_effect=RuntimeError("boom")))
    healthy = fake_worker("personal", AsyncMock(return_value=None))
    mocker.patch.object(
        main_module,
        "create_worker",
        side_effect=lambda account, *args, **kwargs: crashed if account.name == "work" else healthy,
    )

    with pytest.raises(ExceptionGroup):
        await main_module.run(app_config, test_settings)

    crashed.close.assert_awaited_once()
    healthy.close.assert_awaited_once()
