"""Tests for the owner store and credential helpers."""

import json

import pytest
from fastapi import HTTPException, Request

import config
from auth import (
    _owners,
    check_admin_secret,
    get_current_owner,
    get_owner,
    get_player_token,
    issue_owner_id,
    load_owners,
    save_owners,
)


@pytest.fixture(autouse=True)
def _clear_owners():
    """Reset owner store before each test."""
    _owners.clear()
    yield
    _owners.clear()


def _request(headers: dict[str, str]) -> Request:
    """Build a bare request carrying only the given headers."""
    raw = [(k.lower().encode(), v.encode()) for k, v in headers.items()]
    return Request({"type": "http", "method": "GET", "path": "/", "headers": raw})


class TestOwnerStore:
    """Tests for load_owners / save_owners / issue_owner_id."""

    def test_load_nonexistent_returns_empty(self, tmp_path):
        assert load_owners(str(tmp_path / "missing.json")) == {}

    def test_issue_and_reload(self, tmp_path):
        path = str(tmp_path / "owners.json")
        owner = issue_owner_id("Dr. Vance", path)
        assert owner.owner_id.startswith("own_")
        assert len(owner.owner_id) == 4 + 32

        _owners.clear()
        loaded = load_owners(path)
        assert loaded[owner.owner_id].name == "Dr. Vance"

    def test_default_path_follows_config(self, tmp_path, monkeypatch):
        path = tmp_path / "nested" / "owners.json"
        monkeypatch.setattr(config, "OWNERS_FILE", str(path))
        owner = issue_owner_id("Ops")
        with open(path) as f:
            assert owner.owner_id in json.load(f)

    def test_save_is_atomic(self, tmp_path):
        path = str(tmp_path / "owners.json")
        issue_owner_id("A", path)
        save_owners(path)
        assert not (tmp_path / "owners.json.tmp").exists()

    def test_ids_are_unique(self, tmp_path):
        path = str(tmp_path / "owners.json")
        ids = {issue_owner_id(f"O{i}", path).owner_id for i in range(20)}
        assert len(ids) == 20

    def test_get_owner(self, tmp_path):
        owner = issue_owner_id("A", str(tmp_path / "owners.json"))
        assert get_owner(owner.owner_id) == owner
        assert get_owner("own_unknown") is None


class TestAdminSecret:
    """Tests for check_admin_secret()."""

    def test_matches_config(self, monkeypatch):
        monkeypatch.setattr(config, "ADMIN_SECRET", "s3cret")
        assert check_admin_secret("s3cret")
        assert not check_admin_secret("S3CRET")
        assert not check_admin_secret("")


class TestDependencies:
    """Tests for get_current_owner() and get_player_token()."""

    def test_owner_resolved(self, tmp_path):
        owner = issue_owner_id("A", str(tmp_path / "owners.json"))
        assert get_current_owner(_request({"X-Owner-Id": owner.owner_id})) == owner

    def test_owner_missing_header(self):
        with pytest.raises(HTTPException) as exc:
            get_current_owner(_request({}))
        assert exc.value.status_code == 401

    def test_owner_unknown(self):
        with pytest.raises(HTTPException) as exc:
            get_current_owner(_request({"X-Owner-Id": "own_nobody"}))
        assert exc.value.status_code == 401

    def test_bearer_token(self):
        assert get_player_token(_request({"Authorization": "Bearer abc123"})) == "abc123"

    @pytest.mark.parametrize("header", ["", "Basic abc", "Bearer ", "Bearer    "])
    def test_bad_authorization(self, header):
        headers = {"Authorization": header} if header else {}
        with pytest.raises(HTTPException) as exc:
            get_player_token(_request(headers))
        assert exc.value.status_code == 401
