"""Tests for the snapdiff command line."""

import json
from pathlib import Path

import pytest
from click.testing import CliRunner

from conftest import png_bytes
from snapdiff.cli import cli
from snapdiff.models.config import DiffConfig
from snapdiff.models.image import RasterImage
from snapdiff.models.snapshot import SnapshotStatus
from snapdiff.review.snapshot_store import SnapshotStore


@pytest.fixture
def runner() -> CliRunner:
    return CliRunner()


@pytest.fixture
def image_pair(tmp_path: Path, gray_image, red_pixel_image) -> tuple[str, str]:
    baseline = tmp_path / "baseline.png"
    current = tmp_path / "current.png"
    baseline.write_bytes(png_bytes(gray_image))
    current.write_bytes(png_bytes(red_pixel_image))
    return str(baseline), str(current)


def _json_output(output: str) -> dict:
    return json.loads(output[output.index("{"):])


class TestCompareCommand:
    """Tests for `snapdiff compare`."""

    def test_json_output(self, runner, image_pair, temp_config_file):
        result = runner.invoke(cli, ["compare", *image_pair, "--json", "-c", str(temp_config_file)])
        assert result.exit_code == 0, result.output
        payload = _json_output(result.output)
        assert payload["diffPercentage"] == pytest.approx(1.0)
        assert payload["isSignificant"] is False
        assert payload["isSameDimensions"] is True

    def test_table_output(self, runner, image_pair, temp_config_file):
        result = runner.invoke(cli, ["compare", *image_pair, "-c", str(temp_config_file)])
        assert result.exit_code == 0, result.output
        assert "1.00%" in result.output

    def test_ignore_region_option(self, runner, image_pair, temp_config_file):
        result = runner.invoke(
            cli, ["compare", *image_pair, "--ignore", "5,5,1,1", "--json", "-c", str(temp_config_file)]
        )
        assert _json_output(result.output)["diffPercentage"] == 0

    def test_bad_region(self, runner, image_pair, temp_config_file):
        result = runner.invoke(cli, ["compare", *image_pair, "--ignore", "5,5", "-c", str(temp_config_file)])
        assert result.exit_code == 2
        assert "x,y,width,height" in result.output

    def test_significant_change_exits_one(self, runner, tmp_path, image_pair, temp_config_file):
        white = tmp_path / "white.png"
        white.write_bytes(png_bytes(RasterImage.solid(10, 10, (255, 255, 255))))
        result = runner.invoke(cli, ["compare", image_pair[0], str(white), "--json", "-c", str(temp_config_file)])
        assert result.exit_code == 1
        assert _json_output(result.output)["isSignificant"] is True

    def test_writes_output(self, runner, tmp_path, image_pair, temp_config_file):
        target = tmp_path / "diff.png"
        result = runner.invoke(cli, ["compare", *image_pair, "-o", str(target), "-c", str(temp_config_file)])
        assert result.exit_code == 0, result.output
        assert target.exists()

    def test_missing_image_exits_two(self, runner, tmp_path, image_pair, temp_config_file):
        result = runner.invoke(
            cli, ["compare", image_pair[0], str(tmp_path / "missing.png"), "-c", str(temp_config_file)]
        )
        assert result.exit_code == 2
        assert "Failed to load image" in result.output

    def test_runs_without_config_file(self, runner, image_pair, tmp_path):
        result = runner.invoke(cli, ["compare", *image_pair, "--json", "-c", str(tmp_path / "absent.json")])
        assert result.exit_code == 0, result.output


class TestInitCommand:
    """Tests for `snapdiff init`."""

    def test_creates_config(self, runner, tmp_path):
        target = tmp_path / "snapdiff.json"
        result = runner.invoke(cli, ["init", "-c", str(target)])
        assert result.exit_code == 0
        assert DiffConfig.load(target).significance_threshold == 5.0

    def test_keeps_existing_when_declined(self, runner, temp_config_file):
        before = temp_config_file.read_text()
        result = runner.invoke(cli, ["init", "-c", str(temp_config_file)], input="n\n")
        assert result.exit_code == 0
        assert temp_config_file.read_text() == before


class TestSnapshotCommands:
    """Tests for the `snapdiff snapshot` review workflow."""

    def _store(self, config_file: Path) -> SnapshotStore:
        return SnapshotStore(Path(DiffConfig.load(config_file).store_path))

    def _add(self, runner, config_file, current, baseline=None) -> str:
        args = ["snapshot", "add", "--test-id", "test-1", "--project-id", "proj-1",
                "--name", "Hero", "--current", current, "-c", str(config_file)]
        if baseline:
            args += ["--baseline", baseline]
        result = runner.invoke(cli, args)
        assert result.exit_code == 0, result.output
        registry = self._store(config_file).load()
        return next(iter(registry.snapshots))

    def test_add_and_list(self, runner, image_pair, temp_config_file):
        snap_id = self._add(runner, temp_config_file, image_pair[1], image_pair[0])
        result = runner.invoke(cli, ["snapshot", "list", "-c", str(temp_config_file)])
        assert snap_id in result.output
        assert "pending" in result.output

    def test_list_empty(self, runner, temp_config_file):
        result = runner.invoke(cli, ["snapshot", "list", "-c", str(temp_config_file)])
        assert "No snapshots" in result.output

    def test_compare_then_baseline(self, runner, image_pair, temp_config_file):
        snap_id = self._add(runner, temp_config_file, image_pair[1], image_pair[0])

        result = runner.invoke(cli, ["snapshot", "compare", snap_id, "-c", str(temp_config_file)])
        assert result.exit_code == 0, result.output
        snap = self._store(temp_config_file).load().snapshots[snap_id]
        assert snap.diff_percentage == pytest.approx(1.0)
        assert snap.status is SnapshotStatus.PENDING

        result = runner.invoke(cli, ["snapshot", "baseline", snap_id, "-c", str(temp_config_file)])
        assert result.exit_code == 0
        snap = self._store(temp_config_file).load().snapshots[snap_id]
        assert snap.baseline_url == image_pair[1]
        assert snap.status is SnapshotStatus.APPROVED

    def test_compare_without_baseline(self, runner, image_pair, temp_config_file):
        snap_id = self._add(runner, temp_config_file, image_pair[1])
        result = runner.invoke(cli, ["snapshot", "compare", snap_id, "-c", str(temp_config_file)])
        assert result.exit_code == 0
        assert "No baseline" in result.output

    def test_approve_and_reject(self, runner, image_pair, temp_config_file):
        snap_id = self._add(runner, temp_config_file, image_pair[1], image_pair[0])

        runner.invoke(cli, ["snapshot", "reject", snap_id, "-c", str(temp_config_file)])
        assert self._store(temp_config_file).load().snapshots[snap_id].status is SnapshotStatus.REJECTED

        runner.invoke(cli, ["snapshot", "approve", snap_id, "-c", str(temp_config_file)])
        assert self._store(temp_config_file).load().snapshots[snap_id].status is SnapshotStatus.APPROVED

    def test_unknown_snapshot(self, runner, temp_config_file):
        result = runner.invoke(cli, ["snapshot", "approve", "snap-nope", "-c", str(temp_config_file)])
        assert result.exit_code == 1
        assert "snap-nope" in result.output
