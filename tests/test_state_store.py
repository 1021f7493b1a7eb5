"""Tests for the on-disk session record."""

import pytest

from sbc_image_manager.state_store import clear_record, load_record, save_record

RECORD = {"pid": 1, "loop": "/dev/loop7", "completed_steps": ["10_validate_image"]}


@pytest.mark.parametrize("name", ["session.json", "session.yaml", "session.state"])
def test_save_and_load(tmp_path, name):
    path = str(tmp_path / "nested" / name)

    save_record(path, RECORD)

    assert load_record(path) == RECORD
    assert not (tmp_path / "nested" / f"{name}.tmp").exists()


def test_missing_record(tmp_path):
    assert load_record(str(tmp_path / "none.json")) is None


def test_clear_is_idempotent(tmp_path):
    path = str(tmp_path / "session.json")
    save_record(path, RECORD)

    clear_record(path)
    clear_record(path)

    assert load_record(path) is None


def test_record_must_be_mapping(tmp_path):
    path = tmp_path / "session.json"
    path.write_text("[1, 2]")

    with pytest.raises(ValueError):
        load_record(str(path))
