from __future__ import annotations

from pathlib import Path

import pytest

from rep_stats.config import CliOverrides, load_effective_config
from rep_stats.stats import MismatchPolicy


def test_defaults_apply_without_config_file(tmp_path: Path) -> None:
    config = load_effective_config(search_dir=tmp_path)

    assert config.scan.quiet is False
    assert config.scan.on_checksum_mismatch is MismatchPolicy.ABORT
    assert config.backend.supported_formats == ("fsfs",)
    assert config.audit.path is None


def test_merge_order_defaults_then_file_then_overrides(tmp_path: Path) -> None:
    (tmp_path / "rep_stats.toml").write_text(
        "\n".join(
            [
                "[scan]",
                "quiet = true",
                'on_checksum_mismatch = "report"',
                "[audit]",
                'path = "logs/runs.jsonl"',
            ]
        ),
        encoding="utf-8",
    )

    from_file = load_effective_config(search_dir=tmp_path)
    overridden = load_effective_config(
        search_dir=tmp_path,
        overrides=CliOverrides(
            on_checksum_mismatch=MismatchPolicy.ABORT,
            audit_path=tmp_path / "cli.jsonl",
        ),
    )

    assert from_file.scan.quiet is True
    assert from_file.scan.on_checksum_mismatch is MismatchPolicy.REPORT
    assert from_file.audit.path == (tmp_path / "logs" / "runs.jsonl").resolve()
    assert overridden.scan.quiet is True
    assert overridden.scan.on_checksum_mismatch is MismatchPolicy.ABORT
    assert overridden.audit.path == (tmp_path / "cli.jsonl").resolve()


def test_explicit_config_path_is_used(tmp_path: Path) -> None:
    config_path = tmp_path / "custom.toml"
    config_path.write_text('[backend]\nsupported_formats = ["fsfs", "fsx"]\n', encoding="utf-8")

    config = load_effective_config(config_path=config_path, search_dir=tmp_path / "elsewhere")

    assert config.backend.supported_formats == ("fsfs", "fsx")
    assert config.to_public_dict()["backend"] == {"supported_formats": ["fsfs", "fsx"]}


def test_missing_explicit_config_path_raises(tmp_path: Path) -> None:
    with pytest.raises(ValueError, match="does not exist"):
        load_effective_config(config_path=tmp_path / "absent.toml")


@pytest.mark.parametrize(
    ("content", "match"),
    [
        ('scan = "not-a-table"', "section 'scan'"),
        ('[scan]\nquiet = "yes"', "scan.quiet"),
        ('[scan]\non_checksum_mismatch = "ignore"', "scan.on_checksum_mismatch"),
        ("[backend]\nsupported_formats = []", "must not be empty"),
        ("[backend]\nsupported_formats = [1]", "backend.supported_formats"),
        ("[audit]\npath = 3", "audit.path"),
        ("[scan", "not valid TOML"),
    ],
)
def test_invalid_config_raises_value_error(tmp_path: Path, content: str, match: str) -> None:
    (tmp_path / "rep_stats.toml").write_text(content, encoding="utf-8")

    with pytest.raises(ValueError, match=match):
        load_effective_config(search_dir=tmp_path)
