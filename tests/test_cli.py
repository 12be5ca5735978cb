"""Tests for the offline rotation commands."""

import argparse
import json
from datetime import UTC, datetime
from pathlib import Path

import pytest
from pagerline.cli.main import build_parser, main
from pagerline.cli.oncall import parse_instant
from pagerline.cli.rotation_file import load_rotation_file, rotation_from_dict
from pagerline.core.errors import ExitCode, NotFoundError, ValidationError

ROTATION_YAML = """\
rotation:
  name: Platform primary
  layers:
    - name: daily
      handoff_interval_hours: 24
      starts_at: 2024-01-01T00:00:00Z
      participants:
        - alice
        - {id: bob, email: bob@example.com}
    - name: shadow
      is_shadow: true
      starts_at: 2024-01-01T00:00:00Z
      participants:
        - trainee
  overrides:
    - user: carol
      starts_at: 2024-01-03T00:00:00Z
      ends_at: 2024-01-04T00:00:00Z
"""


@pytest.fixture
def rotation_file(tmp_path: Path) -> Path:
    path = tmp_path / "rotation.yaml"
    path.write_text(ROTATION_YAML)
    return path


class TestRotationFile:
    def test_load(self, rotation_file):
        rotation = load_rotation_file(rotation_file)

        assert rotation.name == "Platform primary"
        assert [layer.id for layer in rotation.layers] == ["layer-0", "layer-1"]
        assert [p.user.id for p in rotation.layers[0].participants] == ["alice", "bob"]
        assert rotation.layers[0].participants[1].user.email == "bob@example.com"
        assert rotation.layers[1].is_shadow
        assert rotation.overrides[0].user.id == "carol"

    def test_missing_file(self, tmp_path):
        with pytest.raises(NotFoundError):
            load_rotation_file(tmp_path / "nope.yaml")

    def test_invalid_layer(self):
        with pytest.raises(ValidationError):
            rotation_from_dict({"layers": [{"name": "no start", "participants": ["alice"]}]})

    def test_top_level_must_be_mapping(self, tmp_path):
        path = tmp_path / "list.yaml"
        path.write_text("- alice\n- bob\n")

        with pytest.raises(ValidationError):
            load_rotation_file(path)


class TestParseInstant:
    def test_zulu(self):
        assert parse_instant("2024-01-02T03:04:00Z") == datetime(2024, 1, 2, 3, 4, tzinfo=UTC)

    def test_naive_is_utc(self):
        assert parse_instant("2024-01-02T03:04:00").tzinfo is not None

    def test_garbage(self):
        with pytest.raises(argparse.ArgumentTypeError):
            parse_instant("tomorrow")


def test_parser_has_commands():
    parser = build_parser()

    args = parser.parse_args(["schedule", "r.yaml", "--from", "2024-01-01T00:00:00Z"])

    assert args.command == "schedule"
    assert args.start == datetime(2024, 1, 1, tzinfo=UTC)
    assert args.end is None
    assert args.output_format == "table"


def test_who_prints_primary_and_shadow(rotation_file, capsys):
    code = main(["who", str(rotation_file), "--at", "2024-01-02T06:00:00Z"])

    out = capsys.readouterr().out
    assert code == ExitCode.SUCCESS
    assert "bob" in out
    assert "trainee" in out


def test_who_json_reports_override(rotation_file, capsys):
    code = main(["who", str(rotation_file), "--at", "2024-01-03T06:00:00Z", "-f", "json"])

    body = json.loads(capsys.readouterr().out)
    assert code == ExitCode.SUCCESS
    assert body["current"]["source"] == "override"
    assert body["current"]["user"]["id"] == "carol"
    assert body["shadow"] == []


def test_who_before_rotation_starts(rotation_file, capsys):
    code = main(["who", str(rotation_file), "--at", "2023-12-31T00:00:00Z"])

    assert code == ExitCode.WARNING
    assert "Nobody is on call" in capsys.readouterr().out


def test_who_missing_file(tmp_path, capsys):
    code = main(["who", str(tmp_path / "missing.yaml")])

    assert code == ExitCode.NOT_FOUND


def test_schedule_json(rotation_file, capsys):
    code = main(
        [
            "schedule",
            str(rotation_file),
            "--from",
            "2024-01-02T00:00:00Z",
            "--to",
            "2024-01-04T00:00:00Z",
            "--format",
            "json",
        ]
    )

    shifts = json.loads(capsys.readouterr().out)
    assert code == ExitCode.SUCCESS
    assert [(s["user_id"], s["source"]) for s in shifts] == [
        ("bob", "rotation"),
        ("alice", "rotation"),
        ("carol", "override"),
    ]


def test_schedule_rejects_backwards_range(rotation_file):
    code = main(
        [
            "schedule",
            str(rotation_file),
            "--from",
            "2024-01-04T00:00:00Z",
            "--to",
            "2024-01-02T00:00:00Z",
        ]
    )

    assert code == ExitCode.VALIDATION_ERROR


def test_no_command_prints_help(capsys):
    assert main([]) == ExitCode.SUCCESS
    assert "pagerline" in capsys.readouterr().out
