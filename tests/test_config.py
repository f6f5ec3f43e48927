import pytest
from pydantic import ValidationError

from storefront.core.config import Settings
from storefront.core.storage import JsonFileStorage, MemoryStorage, build_storage


def test_base_url_trailing_slash_is_stripped():
    config = Settings(API_BASE_URL="https://shop.example.com/api/")
    assert config.API_BASE_URL == "https://shop.example.com/api"


def test_base_url_must_be_http():
    with pytest.raises(ValidationError):
        Settings(API_BASE_URL="ftp://shop.example.com")


@pytest.mark.parametrize("timeout", [0, -1.5])
def test_timeout_must_be_positive(timeout):
    with pytest.raises(ValidationError):
        Settings(REQUEST_TIMEOUT_SECONDS=timeout)


def test_blank_storage_key_rejected():
    with pytest.raises(ValidationError):
        Settings(CREDENTIAL_STORAGE_KEY="   ")


def test_settings_read_from_environment(monkeypatch):
    monkeypatch.setenv("GUEST_SESSION_PREFIX", "anon")
    monkeypatch.setenv("REQUEST_TIMEOUT_SECONDS", "3")
    config = Settings()
    assert config.GUEST_SESSION_PREFIX == "anon"
    assert config.REQUEST_TIMEOUT_SECONDS == 3.0


def test_build_storage_picks_backend(tmp_path):
    assert isinstance(build_storage(Settings(STORAGE_PATH=None)), MemoryStorage)
    file_backed = build_storage(Settings(STORAGE_PATH=tmp_path / "state.json"))
    assert isinstance(file_backed, JsonFileStorage)
