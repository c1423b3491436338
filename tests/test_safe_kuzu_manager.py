"""Tests for the Kuzu manager's transactions and schema bootstrap."""
from datetime import datetime, timezone

import pytest

from folio.domain.models import User
from folio.infrastructure.kuzu_repositories import KuzuUserRepository
from folio.utils.safe_kuzu_manager import SafeKuzuManager


def _user(email="ada@example.com"):
    return User(name="Ada", email=email, created_at=datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc))


def test_transaction_commits(kuzu_manager):
    repo = KuzuUserRepository(kuzu_manager)
    with kuzu_manager.transaction(operation="test_commit") as conn:
        user = repo.create(_user(), conn=conn)

    stored = repo.get_by_id(user.id)
    assert stored.email == "ada@example.com"
    assert stored.created_at == datetime(2024, 1, 1, 12, 30, tzinfo=timezone.utc)


def test_transaction_rolls_back_on_error(kuzu_manager):
    repo = KuzuUserRepository(kuzu_manager)

    with pytest.raises(LookupError):
        with kuzu_manager.transaction(operation="test_rollback") as conn:
            repo.create(_user(), conn=conn)
            raise LookupError("abort")

    assert repo.count_all() == 0
    assert repo.get_by_email("ada@example.com") is None


def test_schema_bootstrap_is_idempotent(tmp_path):
    path = str(tmp_path / "kuzu" / "reopen.kuzu")
    first = SafeKuzuManager(path, buffer_pool_size=64 * 1024 * 1024, max_db_size=1 << 30)
    KuzuUserRepository(first).create(_user())
    first.close()

    second = SafeKuzuManager(path, buffer_pool_size=64 * 1024 * 1024, max_db_size=1 << 30)
    try:
        assert KuzuUserRepository(second).count_all() == 1
    finally:
        second.close()


def test_query_value_default(kuzu_manager):
    assert kuzu_manager.query_value("MATCH (u:User) WHERE u.id = 'nope' RETURN u.name", default="none") == "none"
