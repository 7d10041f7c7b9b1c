"""Tests for graphtools.profiles."""

import pytest

from graphtools.profiles import ProfileStore, TenantProfile, resolve_profile


@pytest.fixture
def profiles_path(tmp_path):
    return tmp_path / ".graphtools" / "profiles.json"


def make_profile(name, **kwargs):
    return TenantProfile(name=name, tenant_id=f"{name}-tenant", client_id=f"{name}-client", **kwargs)


class TestProfileStore:
    def test_first_profile_becomes_default(self, profiles_path):
        store = ProfileStore.load(profiles_path)
        store.add(make_profile("contoso"))
        store.add(make_profile("fabrikam", auth_mode="delegated"))

        reloaded = ProfileStore.load(profiles_path)
        assert reloaded.default_profile == "contoso"
        assert reloaded.get("FABRIKAM").auth_mode == "delegated"
        assert [p.name for p in reloaded.list_profiles()] == ["contoso", "fabrikam"]

    def test_unknown_auth_mode_rejected(self, profiles_path):
        store = ProfileStore.load(profiles_path)
        with pytest.raises(ValueError):
            store.add(make_profile("contoso", auth_mode="password"))

    def test_remove_default_promotes_next(self, profiles_path):
        store = ProfileStore.load(profiles_path)
        store.add(make_profile("contoso"))
        store.add(make_profile("fabrikam"))

        assert store.remove("contoso")
        assert store.default_profile == "fabrikam"
        assert not store.remove("contoso")

    def test_set_default(self, profiles_path):
        store = ProfileStore.load(profiles_path)
        store.add(make_profile("contoso"))
        store.add(make_profile("fabrikam"))

        assert store.set_default("fabrikam")
        assert not store.set_default("missing")
        assert resolve_profile(path=profiles_path).name == "fabrikam"
        assert resolve_profile("contoso", path=profiles_path).name == "contoso"

    def test_corrupt_file_gives_empty_store(self, profiles_path):
        profiles_path.parent.mkdir(parents=True)
        profiles_path.write_text("{not json")
        assert ProfileStore.load(profiles_path).profiles == {}

    def test_missing_file(self, profiles_path):
        assert resolve_profile(path=profiles_path) is None


def test_relative_cert_path_resolved(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    profile = make_profile("contoso", cert_path="certs/base64.txt")
    assert profile.resolve_cert_path() == str(tmp_path / "certs" / "base64.txt")
