"""Tests for the host-facing facade: drops, save-as and user notices."""

from __future__ import annotations

from pathlib import Path

import pytest

from extfile_mirror import (
    ExportResult,
    ExportStatus,
    ExternalFileApp,
    IngestStatus,
    MirrorConfig,
    SaveDialogRequest,
    SaveDialogResult,
)


@pytest.fixture
def notices() -> list[str]:
    return []


@pytest.fixture
def style_changes() -> list[bool]:
    return []


@pytest.fixture
def app(config: MirrorConfig, notices: list[str], style_changes: list[bool], fixed_clock) -> ExternalFileApp:
    app = ExternalFileApp(
        config,
        notify=notices.append,
        on_style_changed=lambda: style_changes.append(True),
        clock=fixed_clock,
    )
    app.prepare()
    return app


def _choose(path: Path):
    return lambda request: SaveDialogResult(canceled=False, chosen_path=str(path))


def test_prepare_creates_state_and_hides_empty_folder(app: ExternalFileApp, config: MirrorConfig) -> None:
    assert config.mirror_dir.is_dir()
    assert app.store.load() == {}
    assert "display: none" in config.css_file.read_text(encoding="utf-8")


class TestDrop:
    def test_markdown_files_are_ingested_and_others_skipped(
        self, app: ExternalFileApp, config: MirrorConfig, make_external, style_changes: list[bool]
    ) -> None:
        report = make_external("home/u/notes/report.md")
        image = make_external("home/u/notes/figure.png")
        style_changes.clear()

        results = app.handle_dropped_files([report, image])

        assert [r.status for r in results] == [IngestStatus.INGESTED]
        assert app.store.load() == {str(report): "report-EXTFILE-20240301101530.md"}
        assert "opacity: 0.35" in config.css_file.read_text(encoding="utf-8")
        assert style_changes

    def test_repeat_drop_notifies_already_added(
        self, app: ExternalFileApp, make_external, notices: list[str]
    ) -> None:
        report = make_external("report.md")
        app.handle_dropped_files([report])
        results = app.handle_dropped_files([report])

        assert results[0].status is IngestStatus.ALREADY_TRACKED
        assert notices == ["report.md already added"]

    def test_failures_become_notices(self, app: ExternalFileApp, tmp_path: Path, notices: list[str]) -> None:
        results = app.handle_dropped_files([tmp_path / "gone.md"])

        assert results == []
        assert len(notices) == 1
        assert notices[0].startswith("Could not add gone.md:")


class TestSaveAs:
    def test_success(self, app: ExternalFileApp, config: MirrorConfig, make_external, tmp_path: Path, notices) -> None:
        report = make_external("report.md", "body")
        (result,) = app.handle_dropped_files([report])
        destination = tmp_path / "saved.md"

        returned = app.save_as(Path("ExternalFile") / result.mirrored_name, _choose(destination))

        assert returned == ExportResult(ExportStatus.SAVED, destination)
        assert destination.read_text(encoding="utf-8") == "body"
        assert notices == ["File saved and removed"]
        app.reconciler.reconcile()
        assert app.store.load() == {}

    def test_cancel_is_silent(self, app: ExternalFileApp, make_external, notices) -> None:
        (result,) = app.handle_dropped_files([make_external("report.md")])

        returned = app.save_as(
            Path("ExternalFile") / result.mirrored_name, lambda request: SaveDialogResult(canceled=True)
        )

        assert returned.status is ExportStatus.CANCELLED
        assert notices == []

    def test_untracked_file(self, app: ExternalFileApp, config: MirrorConfig, notices) -> None:
        (config.mirror_dir / "stray.md").write_text("x", encoding="utf-8")

        result = app.save_as(Path("ExternalFile/stray.md"), _choose(Path("/unused.md")))
        assert result.status is ExportStatus.FAILED
        assert notices == ["Original file path not found"]

    def test_missing_mapping_file(self, app: ExternalFileApp, config: MirrorConfig, notices) -> None:
        (config.mirror_dir / "stray.md").write_text("x", encoding="utf-8")
        config.data_file.unlink()

        app.save_as(Path("ExternalFile/stray.md"), _choose(Path("/unused.md")))

        assert notices == ["Mapping file does not exist"]

    def test_dialog_failure(self, app: ExternalFileApp, make_external, notices) -> None:
        (result,) = app.handle_dropped_files([make_external("report.md")])

        def broken(request: SaveDialogRequest) -> SaveDialogResult:
            raise RuntimeError("no display")

        app.save_as(Path("ExternalFile") / result.mirrored_name, broken)

        assert len(notices) == 1
        assert notices[0].startswith("Error saving file:")
        assert "no display" in notices[0]

    def test_availability(self, app: ExternalFileApp) -> None:
        assert app.save_as_available("ExternalFile/report-EXTFILE-20240301101530.md")
        assert not app.save_as_available("Daily/2024-03-01.md")

    def test_path_outside_mirror_folder_is_refused(
        self, app: ExternalFileApp, config: MirrorConfig, make_external, notices
    ) -> None:
        (result,) = app.handle_dropped_files([make_external("report.md", "tracked")])
        elsewhere = config.vault_dir / "Daily" / result.mirrored_name
        elsewhere.parent.mkdir()
        elsewhere.write_text("unrelated", encoding="utf-8")
        destination = config.vault_dir.parent / "saved.md"
        relative = f"Daily/{result.mirrored_name}"
        assert not app.save_as_available(relative)

        returned = app.save_as(Path(relative), _choose(destination))

        assert returned.status is ExportStatus.FAILED
        assert notices == ["Original file path not found"]
        assert elsewhere.read_text(encoding="utf-8") == "unrelated"
        assert (config.mirror_dir / result.mirrored_name).exists()
        assert not destination.exists()


def test_layout_change_refreshes_visibility(app: ExternalFileApp, config: MirrorConfig) -> None:
    (config.mirror_dir / "manual.md").write_text("x", encoding="utf-8")
    app.on_layout_change()
    assert "opacity: 0.35" in config.css_file.read_text(encoding="utf-8")


def test_start_and_stop(app: ExternalFileApp) -> None:
    app.start()
    try:
        assert app.watch.is_running
    finally:
        app.stop()
    assert not app.watch.is_running
