"""Tests for copy rotation."""

from datetime import date
from pathlib import Path

import pytest

from dd_backup.core.records import BackupRecord
from dd_backup.core.rotation import list_backups, rotate


@pytest.fixture
def current():
    """Record of the image written by the current run."""
    return BackupRecord.for_device(date(2023, 4, 1), "desktop", "ModelX", "S1")


def touch(directory: Path, *names: str) -> None:
    for name in names:
        (directory / name).write_bytes(b"")


def names(directory: Path) -> list[str]:
    return sorted(p.name for p in directory.iterdir())


HISTORY = (
    "2023-01-01_desktop_ModelX_S1.img",
    "2023-02-01_desktop_ModelX_S1.img",
    "2023-03-01_desktop_ModelX_S1.img",
    "2023-04-01_desktop_ModelX_S1.img",
)


class TestRotate:
    """Tests for rotate function."""

    def test_keeps_most_recent(self, tmp_path, current):
        """Test only the newest ``copies`` images survive."""
        touch(tmp_path, *HISTORY)

        result = rotate(tmp_path, current, 2)

        assert names(tmp_path) == [
            "2023-03-01_desktop_ModelX_S1.img",
            "2023-04-01_desktop_ModelX_S1.img",
        ]
        assert [p.name for p in result.deleted] == [
            "2023-01-01_desktop_ModelX_S1.img",
            "2023-02-01_desktop_ModelX_S1.img",
        ]
        assert [p.name for p in result.kept] == [
            "2023-04-01_desktop_ModelX_S1.img",
            "2023-03-01_desktop_ModelX_S1.img",
        ]
        assert result.errors == []

    def test_unset_copies_never_deletes(self, tmp_path, current):
        touch(tmp_path, *HISTORY)

        result = rotate(tmp_path, current, None)

        assert names(tmp_path) == sorted(HISTORY)
        assert result.deleted == []

    def test_within_limit(self, tmp_path, current):
        touch(tmp_path, *HISTORY[-2:])
        result = rotate(tmp_path, current, 3)
        assert result.deleted == []
        assert len(result.kept) == 2

    def test_other_files_untouched(self, tmp_path, current):
        """Test foreign files and other devices' images are never deleted."""
        others = (
            "notes.txt",
            "2023-01-01_desktop_ModelX_S1.img.part",
            "2022-01-01_desktop_ModelY_S1.img",
            "2022-01-01_desktop_ModelX_S2.img",
            "2022-01-01_laptop_ModelX_S1.img",
        )
        touch(tmp_path, *HISTORY, *others)

        rotate(tmp_path, current, 1)

        assert names(tmp_path) == sorted([HISTORY[-1], *others])

    def test_unnamed_device_groups_by_model_and_serial(self, tmp_path):
        current = BackupRecord.for_device(date(2023, 4, 1), None, "ModelX", "S1")
        touch(
            tmp_path,
            "2023-01-01_desktop_ModelX_S1.img",
            "2023-02-01_ModelX_S1.img",
            "2023-04-01_ModelX_S1.img",
        )

        rotate(tmp_path, current, 1)

        assert names(tmp_path) == ["2023-04-01_ModelX_S1.img"]

    def test_subdirectories_ignored(self, tmp_path, current):
        (tmp_path / "2020-01-01_desktop_ModelX_S1.img").mkdir()
        touch(tmp_path, HISTORY[-1])

        result = rotate(tmp_path, current, 1)

        assert result.deleted == []
        assert (tmp_path / "2020-01-01_desktop_ModelX_S1.img").is_dir()

    def test_dry_run(self, tmp_path, current):
        touch(tmp_path, *HISTORY)

        result = rotate(tmp_path, current, 2, dry_run=True)

        assert len(result.deleted) == 2
        assert names(tmp_path) == sorted(HISTORY)

    def test_dry_run_counts_planned_image(self, tmp_path, current):
        """Test the not yet written image takes one of the kept slots."""
        touch(tmp_path, *HISTORY[:3])

        result = rotate(tmp_path, current, 2, dry_run=True)

        assert [p.name for p in result.deleted] == list(HISTORY[:2])
        assert [p.name for p in result.kept] == [HISTORY[3], HISTORY[2]]
        assert names(tmp_path) == sorted(HISTORY[:3])

    def test_delete_error_collected(self, tmp_path, current, monkeypatch):
        """Test one failed deletion does not stop the others."""
        touch(tmp_path, *HISTORY)
        real_unlink = Path.unlink

        def unlink(self, missing_ok=False):
            if self.name == HISTORY[1]:
                raise PermissionError("Operation not permitted")
            real_unlink(self, missing_ok=missing_ok)

        monkeypatch.setattr(Path, "unlink", unlink)

        result = rotate(tmp_path, current, 1)

        assert len(result.errors) == 1
        assert HISTORY[1] in result.errors[0]
        assert [p.name for p in result.deleted] == [HISTORY[0], HISTORY[2]]
        assert names(tmp_path) == [HISTORY[1], HISTORY[3]]

    def test_missing_directory(self, tmp_path, current):
        result = rotate(tmp_path / "missing", current, 1)
        assert result.deleted == []
        assert len(result.errors) == 1


class TestListBackups:
    """Tests for list_backups function."""

    def test_parses_images_only(self, tmp_path):
        touch(tmp_path, "2023-01-01_ModelX_S1.img", "README")
        backups = list_backups(tmp_path)
        assert len(backups) == 1
        path, record = backups[0]
        assert path.name == "2023-01-01_ModelX_S1.img"
        assert record.serial == "S1"
