"""Tests for main.py -- the user administration CLI.

Each test points the CLI at a throwaway SQLite file under tmp_path.
"""

import pytest

from auth.models import Authority
from auth.store import SiteUserStore
from main import main


@pytest.fixture
def db_url(tmp_path) -> str:
    return f"sqlite:///{tmp_path / 'cli.db'}"


def _load(db_url: str, username: str):
    store = SiteUserStore(db_url)
    try:
        return store.find_by_username(username)
    finally:
        store.close()


def test_create_admin_user(db_url: str, capsys) -> None:
    rc = main(
        [
            "--db-url",
            db_url,
            "create-user",
            "管理者ユーザ",
            "--email",
            "admin@example.com",
            "--admin",
            "--password",
            "password",
        ]
    )
    assert rc == 0
    assert "authority=ADMIN" in capsys.readouterr().out
    user = _load(db_url, "管理者ユーザ")
    assert user.authority is Authority.ADMIN
    assert user.password != "password"


def test_create_user_prompts_for_password(db_url: str, monkeypatch) -> None:
    monkeypatch.setattr("getpass.getpass", lambda prompt="": "password")
    rc = main(["--db-url", db_url, "create-user", "Harada", "--email", "harada@example.com", "--gender", "1"])
    assert rc == 0
    user = _load(db_url, "Harada")
    assert (user.gender, user.authority) == (1, Authority.USER)


def test_duplicate_username_fails(db_url: str, capsys) -> None:
    args = ["--db-url", db_url, "create-user", "Harada", "--email", "h@example.com", "--password", "password"]
    assert main(args) == 0
    assert main(args) == 1
    assert "already registered" in capsys.readouterr().err


def test_invalid_email_fails(db_url: str, capsys) -> None:
    rc = main(["--db-url", db_url, "create-user", "Harada", "--email", "nope", "--password", "password"])
    assert rc == 1
    assert "email" in capsys.readouterr().err
    assert _load(db_url, "Harada") is None


def test_list_users(db_url: str, capsys) -> None:
    assert main(["--db-url", db_url, "list-users"]) == 0
    assert "No users registered." in capsys.readouterr().out

    main(["--db-url", db_url, "create-user", "Harada", "--email", "h@example.com", "--password", "password"])
    capsys.readouterr()
    assert main(["--db-url", db_url, "list-users"]) == 0
    out = capsys.readouterr().out
    assert "Harada" in out
    assert "USER" in out
