"""Unit tests for auth/store.py -- SiteUserStore persistence.

Covers:
- save() assigns id and created_at and round-trips every field
- find_by_username() returns None for unknown names
- the UNIQUE username constraint raises IntegrityError and leaves the first record intact
- find_all() orders by username; count()
- engine kwargs (StaticPool) reach create_engine, so worker threads see one in-memory DB
"""

from concurrent.futures import ThreadPoolExecutor

import pytest
from sqlalchemy.exc import IntegrityError
from sqlalchemy.pool import StaticPool

from auth.models import Authority, SiteUser
from auth.store import SiteUserStore


@pytest.fixture
def store():
    """Private in-memory store (single thread, so plain :memory: is fine)."""
    s = SiteUserStore("sqlite:///:memory:")
    yield s
    s.close()


def test_save_assigns_id_and_timestamp(store: SiteUserStore) -> None:
    user = SiteUser(username="Harada", password="hash", email="harada@example.com", gender=1)
    saved = store.save(user)
    assert saved.id is not None
    assert saved.created_at
    assert user.id is None


def test_saved_fields_round_trip(store: SiteUserStore) -> None:
    store.save(
        SiteUser(
            username="管理者ユーザ",
            password="hash",
            email="admin@example.com",
            gender=2,
            is_admin=True,
            authority=Authority.ADMIN,
        )
    )
    found = store.find_by_username("管理者ユーザ")
    assert found is not None
    assert (found.email, found.gender, found.is_admin, found.authority) == (
        "admin@example.com",
        2,
        True,
        Authority.ADMIN,
    )
    assert found.gender_label == "その他"


def test_find_by_username_missing(store: SiteUserStore) -> None:
    assert store.find_by_username("Takeda") is None


def test_duplicate_username_raises(store: SiteUserStore) -> None:
    store.save(SiteUser(username="Harada", password="a", email="first@example.com"))
    with pytest.raises(IntegrityError):
        store.save(SiteUser(username="Harada", password="b", email="second@example.com"))
    assert store.count() == 1
    assert store.find_by_username("Harada").email == "first@example.com"


def test_find_all_ordered_by_username(store: SiteUserStore) -> None:
    for name in ("Takeda", "Harada", "Inoue"):
        store.save(SiteUser(username=name, password="x", email=f"{name.lower()}@example.com"))
    assert [u.username for u in store.find_all()] == ["Harada", "Inoue", "Takeda"]


def test_count(store: SiteUserStore) -> None:
    assert store.count() == 0
    store.save(SiteUser(username="Harada", password="x", email="harada@example.com"))
    assert store.count() == 1


def test_engine_kwargs_share_memory_db_across_threads() -> None:
    s = SiteUserStore("sqlite://", poolclass=StaticPool)
    try:
        assert isinstance(s.engine.pool, StaticPool)
        s.save(SiteUser(username="Harada", password="x", email="harada@example.com"))
        with ThreadPoolExecutor(max_workers=1) as pool:
            found = pool.submit(s.find_by_username, "Harada").result()
        assert found is not None
    finally:
        s.close()
