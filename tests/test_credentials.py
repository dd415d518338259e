import json

import pytest

from vibecheck.core.credentials import (
    JsonFileCredentialStore,
    MemoryCredentialStore,
    mask_secret,
)
from vibecheck.core.errors import StorageError


@pytest.mark.parametrize(
    ("value", "expected"),
    [
        (None, ""),
        ("", ""),
        ("short", "***"),
        ("AIzaSyExampleKey1234", "AIza...1234"),
    ],
)
def test_mask_secret(value, expected):
    assert mask_secret(value) == expected


@pytest.mark.asyncio
async def test_memory_store_round_trip():
    store = MemoryCredentialStore()
    assert await store.load() is None

    await store.save("abc")
    assert await store.load() == "abc"

    await store.save("")
    assert await store.load() is None


@pytest.mark.asyncio
async def test_json_store_missing_file_loads_nothing(tmp_path):
    store = JsonFileCredentialStore(tmp_path / "missing" / "credentials.json")

    assert await store.load() is None


@pytest.mark.asyncio
async def test_json_store_preserves_other_keys(tmp_path):
    path = tmp_path / "credentials.json"
    path.write_text(json.dumps({"theme": "dark"}), encoding="utf-8")
    store = JsonFileCredentialStore(path)

    await store.save("AIza-secret")

    assert json.loads(path.read_text(encoding="utf-8")) == {
        "geminiApiKey": "AIza-secret",
        "theme": "dark",
    }
    assert await store.load() == "AIza-secret"

    await store.save(None)

    assert json.loads(path.read_text(encoding="utf-8")) == {"theme": "dark"}
    assert await store.load() is None


@pytest.mark.asyncio
async def test_json_store_uses_configured_key(tmp_path):
    path = tmp_path / "nested" / "store.json"
    store = JsonFileCredentialStore(path, key="cloudKey")

    await store.save("value")

    assert json.loads(path.read_text(encoding="utf-8")) == {"cloudKey": "value"}


@pytest.mark.asyncio
@pytest.mark.parametrize("content", ["{not json", "[1, 2]"])
async def test_json_store_rejects_corrupt_documents(tmp_path, content):
    path = tmp_path / "credentials.json"
    path.write_text(content, encoding="utf-8")
    store = JsonFileCredentialStore(path)

    with pytest.raises(StorageError):
        await store.load()
    with pytest.raises(StorageError):
        await store.save("value")


@pytest.mark.asyncio
async def test_json_store_write_failure_raises_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("", encoding="utf-8")
    store = JsonFileCredentialStore(blocker / "credentials.json")

    with pytest.raises(StorageError):
        await store.save("value")
