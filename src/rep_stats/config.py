"""Configuration loading and deterministic merge order."""

from __future__ import annotations

import tomllib
from dataclasses import dataclass
from pathlib import Path

from rep_stats.backends.fsfs import FSFS_FORMAT
from rep_stats.stats.tally import MismatchPolicy

CONFIG_FILE_NAME = "rep_stats.toml"
DEFAULT_SUPPORTED_FORMATS = (FSFS_FORMAT,)


@dataclass(slots=True, frozen=True)
class ScanConfig:
    """Scan behavior settings."""

    quiet: bool
    on_checksum_mismatch: MismatchPolicy


@dataclass(slots=True, frozen=True)
class BackendConfig:
    """Store format gate settings."""

    supported_formats: tuple[str, ...]


@dataclass(slots=True, frozen=True)
class AuditConfig:
    """Optional JSONL run log settings."""

    path: Path | None


@dataclass(slots=True, frozen=True)
class StatsConfig:
    """Fully merged run configuration."""

    scan: ScanConfig
    backend: BackendConfig
    audit: AuditConfig

    def to_public_dict(self) -> dict[str, object]:
        """Return serializable config snapshot for the run log."""
        return {
            "scan": {
                "quiet": self.scan.quiet,
                "on_checksum_mismatch": self.scan.on_checksum_mismatch.value,
            },
            "backend": {
                "supported_formats": list(self.backend.supported_formats),
            },
            "audit": {
                "path": str(self.audit.path) if self.audit.path is not None else None,
            },
        }


@dataclass(slots=True, frozen=True)
class CliOverrides:
    """Optional command-line overrides applied at highest precedence."""

    quiet: bool | None = None
    on_checksum_mismatch: MismatchPolicy | None = None
    audit_path: Path | None = None


def default_config() -> StatsConfig:
    """Build the default configuration."""
    return StatsConfig(
        scan=ScanConfig(quiet=False, on_checksum_mismatch=MismatchPolicy.ABORT),
        backend=BackendConfig(supported_formats=DEFAULT_SUPPORTED_FORMATS),
        audit=AuditConfig(path=None),
    )


def load_config_file(path: Path | None, search_dir: Path) -> tuple[dict[str, object], Path]:
    """Load an explicit config file, or optional rep_stats.toml from search_dir."""
    config_path = path if path is not None else search_dir / CONFIG_FILE_NAME
    if path is None and not config_path.exists():
        return {}, search_dir
    try:
        with config_path.open("rb") as handle:
            payload = tomllib.load(handle)
    except FileNotFoundError as error:
        raise ValueError(f"Config file '{config_path}' does not exist.") from error
    except tomllib.TOMLDecodeError as error:
        raise ValueError(f"Config file '{config_path}' is not valid TOML: {error}") from error
    return payload, config_path.resolve().parent


def _get_table(payload: dict[str, object], key: str) -> dict[str, object]:
    value = payload.get(key, {})
    if not isinstance(value, dict):
        raise ValueError(f"Config section '{key}' must be a table.")
    return value


def _tuple_of_strings(value: object, section: str, field: str) -> tuple[str, ...]:
    if not isinstance(value, list):
        raise ValueError(f"Config field '{section}.{field}' must be a list of strings.")
    output: list[str] = []
    for item in value:
        if not isinstance(item, str):
            raise ValueError(f"Config field '{section}.{field}' must contain only strings.")
        output.append(item)
    return tuple(output)


def _mismatch_policy(value: object, name: str) -> MismatchPolicy:
    allowed = ", ".join(policy.value for policy in MismatchPolicy)
    if not isinstance(value, str):
        raise ValueError(f"Config field '{name}' must be one of {allowed}.")
    try:
        return MismatchPolicy(value)
    except ValueError as error:
        raise ValueError(f"Config field '{name}' must be one of {allowed}.") from error


def merge_config(
    base: StatsConfig,
    file_payload: dict[str, object],
    overrides: CliOverrides,
    base_dir: Path | None = None,
) -> StatsConfig:
    """Merge defaults, config file, then CLI overrides."""
    scan_payload = _get_table(file_payload, "scan")
    backend_payload = _get_table(file_payload, "backend")
    audit_payload = _get_table(file_payload, "audit")

    quiet = base.scan.quiet
    if "quiet" in scan_payload:
        raw_quiet = scan_payload["quiet"]
        if not isinstance(raw_quiet, bool):
            raise ValueError("Config field 'scan.quiet' must be a boolean.")
        quiet = raw_quiet

    policy = base.scan.on_checksum_mismatch
    if "on_checksum_mismatch" in scan_payload:
        policy = _mismatch_policy(
            scan_payload["on_checksum_mismatch"], "scan.on_checksum_mismatch"
        )

    supported_formats = base.backend.supported_formats
    if "supported_formats" in backend_payload:
        supported_formats = _tuple_of_strings(
            backend_payload["supported_formats"], "backend", "supported_formats"
        )
        if not supported_formats:
            raise ValueError("Config field 'backend.supported_formats' must not be empty.")

    audit_path = base.audit.path
    if "path" in audit_payload:
        raw_path = audit_payload["path"]
        if not isinstance(raw_path, str) or not raw_path.strip():
            raise ValueError("Config field 'audit.path' must be a non-empty string.")
        audit_path = Path(raw_path)
        if base_dir is not None and not audit_path.is_absolute():
            audit_path = base_dir / audit_path

    merged = StatsConfig(
        scan=ScanConfig(quiet=quiet, on_checksum_mismatch=policy),
        backend=BackendConfig(supported_formats=supported_formats),
        audit=AuditConfig(path=audit_path),
    )
    return apply_cli_overrides(merged, overrides)


def apply_cli_overrides(config: StatsConfig, overrides: CliOverrides) -> StatsConfig:
    """Apply command-line overrides at highest precedence."""
    scan = ScanConfig(
        quiet=overrides.quiet if overrides.quiet is not None else config.scan.quiet,
        on_checksum_mismatch=(
            overrides.on_checksum_mismatch
            if overrides.on_checksum_mismatch is not None
            else config.scan.on_checksum_mismatch
        ),
    )
    audit_path = overrides.audit_path or config.audit.path
    return StatsConfig(
        scan=scan,
        backend=config.backend,
        audit=AuditConfig(path=audit_path.resolve() if audit_path is not None else None),
    )


def load_effective_config(
    config_path: Path | None = None,
    overrides: CliOverrides | None = None,
    search_dir: Path | None = None,
) -> StatsConfig:
    """Load effective config using merge order defaults -> config file -> overrides."""
    payload, base_dir = load_config_file(config_path, (search_dir or Path.cwd()).resolve())
    return merge_config(default_config(), payload, overrides or CliOverrides(), base_dir)
