"""CLI command tests."""

from unittest.mock import patch

import pytest
from typer.testing import CliRunner

from linkgate import __version__
from linkgate.cli import app
from linkgate.client import FileStorage, SessionManager
from linkgate.config import ClientSettings
from linkgate.models import Role

runner = CliRunner()


@pytest.fixture
def client_settings(tmp_path) -> ClientSettings:
    return ClientSettings(_env_file=None, storage_path=str(tmp_path / "session.json"))


def test_version():
    result = runner.invoke(app, ["version"])

    assert result.exit_code == 0
    assert __version__ in result.output


def test_users_role(test_settings):
    with patch("linkgate.cli.users.settings", test_settings):
        admin = runner.invoke(app, ["users", "role", "Boss@Example.com"])
        standard = runner.invoke(app, ["users", "role", "user@example.com"])

    assert admin.exit_code == 0
    assert "boss@example.com: administrator" in admin.output
    assert "user@example.com: standard" in standard.output


def test_users_role_invalid_email():
    result = runner.invoke(app, ["users", "role", "nope"])

    assert result.exit_code == 1


def test_db_commands_need_database(test_settings):
    with patch("linkgate.cli.db.settings", test_settings):
        result = runner.invoke(app, ["db", "init"])

    assert result.exit_code == 1
    assert "DATABASE_URL" in result.output


def test_auth_status_signed_out(client_settings):
    with patch("linkgate.cli.auth.get_client_settings", return_value=client_settings):
        result = runner.invoke(app, ["auth", "status"])

    assert result.exit_code == 1
    assert "Not signed in" in result.output


def test_auth_status_and_logout(client_settings):
    SessionManager(FileStorage(client_settings.storage_path)).login(
        "user@example.com", Role.STANDARD
    )

    with patch("linkgate.cli.auth.get_client_settings", return_value=client_settings):
        status = runner.invoke(app, ["auth", "status"])
        logout = runner.invoke(app, ["auth", "logout"])
        after = runner.invoke(app, ["auth", "status"])

    assert status.exit_code == 0
    assert "user@example.com" in status.output
    assert logout.exit_code == 0
    assert after.exit_code == 1
