import pytest

from adstudio.errors import PersistenceError
from adstudio.services.asset_store import LocalAssetStore, build_storage_path, sanitize_component


def test_storage_path_layout():
    assert build_storage_path("u1", "p1", "g1", "image/png") == "users/u1/projects/p1/g1.png"
    assert build_storage_path("u1", "p1", "g1", "image/jpeg").endswith("g1.jpg")


def test_sanitize_component_blocks_traversal():
    assert "/" not in sanitize_component("../../etc/passwd")
    assert not sanitize_component("..").startswith(".")
    assert sanitize_component("..") == "unnamed"


@pytest.mark.asyncio
async def test_upload_writes_file_and_returns_url(tmp_path):
    store = LocalAssetStore(base_path=str(tmp_path), base_url="https://cdn.test/assets/")

    stored = await store.upload("u1", "p1", "g1", b"image-bytes", "image/png")

    assert stored.storage_path == "users/u1/projects/p1/g1.png"
    assert stored.url == "https://cdn.test/assets/users/u1/projects/p1/g1.png"
    assert (tmp_path / stored.storage_path).read_bytes() == b"image-bytes"


@pytest.mark.asyncio
async def test_upload_never_overwrites(tmp_path):
    store = LocalAssetStore(base_path=str(tmp_path), base_url="https://cdn.test")
    await store.upload("u1", "p1", "g1", b"first", "image/png")

    with pytest.raises(PersistenceError):
        await store.upload("u1", "p1", "g1", b"second", "image/png")

    assert (tmp_path / "users/u1/projects/p1/g1.png").read_bytes() == b"first"


@pytest.mark.asyncio
async def test_delete(tmp_path):
    store = LocalAssetStore(base_path=str(tmp_path), base_url="https://cdn.test")
    stored = await store.upload("u1", "p1", "g1", b"bytes", "image/png")

    assert await store.delete(stored.storage_path) is True
    assert await store.delete(stored.storage_path) is False
    assert not (tmp_path / stored.storage_path).exists()
