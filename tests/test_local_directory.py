import os
from datetime import timedelta

import pytest
from PIL import Image

from image_sync.sync.interfaces import LocalDirectory
from image_sync.sync.local_directory import LocalDirectoryAdapter
from image_sync.utils.errors import LocalIOError

from conftest import T0, jpeg_bytes, local_mtime, write_image


@pytest.fixture
def adapter() -> LocalDirectoryAdapter:
    return LocalDirectoryAdapter()


def test_adapter_satisfies_protocol(adapter) -> None:
    assert isinstance(adapter, LocalDirectory)


def test_list_dir_returns_sorted_regular_files(adapter, tmp_path) -> None:
    (tmp_path / "b.jpg").write_bytes(b"b")
    (tmp_path / "a.jpg").write_bytes(b"a")
    (tmp_path / "nested").mkdir()

    assert adapter.list_dir(tmp_path) == ["a.jpg", "b.jpg"]


def test_list_dir_missing_directory_raises(adapter, tmp_path) -> None:
    with pytest.raises(LocalIOError) as excinfo:
        adapter.list_dir(tmp_path / "missing")

    assert "Failed to list" in excinfo.value.message
    assert excinfo.value.path.endswith("missing")


def test_write_file_replaces_content_without_leaving_temp_files(adapter, tmp_path) -> None:
    target = tmp_path / "photo.jpg"
    target.write_bytes(b"old")

    adapter.write_file(target, b"new")

    assert target.read_bytes() == b"new"
    assert sorted(os.listdir(tmp_path)) == ["photo.jpg"]


def test_write_file_into_missing_directory_raises(adapter, tmp_path) -> None:
    with pytest.raises(LocalIOError):
        adapter.write_file(tmp_path / "missing" / "photo.jpg", b"data")


def test_stat_and_set_modified_time_round_trip_milliseconds(adapter, tmp_path) -> None:
    path = tmp_path / "photo.jpg"
    path.write_bytes(b"12345")
    stamp = T0 + timedelta(milliseconds=123)

    adapter.set_modified_time(path, stamp)
    stat = adapter.stat(path)

    assert stat.mtime == stamp
    assert stat.size == 5
    assert local_mtime(path) == stamp


def test_delete_file(adapter, tmp_path) -> None:
    path = tmp_path / "photo.jpg"
    path.write_bytes(b"x")

    adapter.delete_file(path)

    assert not adapter.exists(path)
    with pytest.raises(LocalIOError):
        adapter.delete_file(path)


def test_read_missing_file_raises(adapter, tmp_path) -> None:
    with pytest.raises(LocalIOError):
        adapter.read_file(tmp_path / "missing.jpg")


def test_ensure_dir_creates_parents(adapter, tmp_path) -> None:
    target = tmp_path / "a" / "b"
    adapter.ensure_dir(target)
    assert target.is_dir()


def test_is_corrupted_detects_bad_images(adapter, tmp_path) -> None:
    good = write_image(tmp_path, "good.jpg", T0)
    bad = tmp_path / "bad.jpg"
    bad.write_bytes(b"definitely not a jpeg")
    truncated = tmp_path / "truncated.jpg"
    truncated.write_bytes(jpeg_bytes()[:20])

    assert adapter.is_corrupted(good) is False
    assert adapter.is_corrupted(bad) is True
    assert adapter.is_corrupted(truncated) is True


def test_is_corrupted_on_missing_file_raises(adapter, tmp_path) -> None:
    with pytest.raises(LocalIOError):
        adapter.is_corrupted(tmp_path / "missing.jpg")


def test_is_corrupted_accepts_images_over_the_pixel_limit(adapter, tmp_path, mocker) -> None:
    panorama = tmp_path / "panorama.png"
    Image.new("1", (64, 32)).save(panorama, format="PNG")
    # 2048 pixels is more than twice the patched limit, so Pillow refuses to open it.
    mocker.patch.object(Image, "MAX_IMAGE_PIXELS", 1000)

    assert adapter.is_corrupted(panorama) is False
