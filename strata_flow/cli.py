from __future__ import annotations

import logging
import os
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd
import typer
import yaml

from .allocate import AllocationConfig
from .errors import ConfigurationError, PersistenceError
from .logging_utils import configure_logging
from .session import RandomizationSession, StorageConfig
from .simulate import simulate_enrollment
from .strata import build_strata_scheme

app = typer.Typer(help="Stratified block randomization CLI")

DEFAULT_CONFIG = Path(__file__).parent / "config" / "default.yaml"


def _expand_env(value):
    if isinstance(value, str):
        return os.path.expandvars(value)
    if isinstance(value, dict):
        return {k: _expand_env(v) for k, v in value.items()}
    if isinstance(value, list):
        return [_expand_env(v) for v in value]
    return value


def _optional_path(section: Optional[dict], key: str) -> Optional[Path]:
    """Path setting, or None when unset, blank or an unexpanded ``${VAR}``."""
    value = (section or {}).get(key)
    if value is None:
        return None
    value = str(value).strip()
    if not value or (value.startswith("${") and value.endswith("}")):
        return None
    return Path(value)


def load_config(path: str) -> dict:
    """Read a YAML project config and expand ``${VAR}`` references.

    An empty file is an empty config; any other top level than a mapping
    raises ConfigurationError.
    """
    with open(path, "r", encoding="utf-8") as handle:
        raw = yaml.safe_load(handle)
    if raw is None:
        return {}
    if not isinstance(raw, dict):
        raise ConfigurationError(f"{path}: expected a mapping at the top level, got {type(raw).__name__}")
    return _expand_env(raw)


def build_allocation_config(cfg: dict, block_size: Optional[int] = None) -> AllocationConfig:
    config = AllocationConfig.from_dict(cfg)
    if block_size is not None:
        config = AllocationConfig(
            groups=config.groups,
            block_size=block_size,
            rebalance=config.rebalance,
            priority_mode=config.priority_mode,
            seed=config.seed,
        )
    return config


def build_session(app_config: dict, block_size: Optional[int] = None) -> RandomizationSession:
    return RandomizationSession(
        config=build_allocation_config(app_config.get("allocation", {}), block_size),
        scheme=build_strata_scheme(app_config.get("strata")),
        storage=StorageConfig.from_dict(app_config.get("storage")),
    )


def _setup(config_path: Path, verbose: bool) -> dict:
    try:
        app_config = load_config(str(config_path))
    except (ConfigurationError, yaml.YAMLError) as exc:
        _fail(f"Invalid config {config_path}: {exc}")
    log_path = _optional_path(app_config.get("logging"), "log_path")
    configure_logging(logging.DEBUG if verbose else logging.WARNING, log_path)
    return app_config


def _parse_pairs(pairs: List[str]) -> Dict[str, str]:
    parsed: Dict[str, str] = {}
    for pair in pairs:
        key, sep, value = pair.partition("=")
        if not sep or not key.strip():
            raise ValueError(f"Expected name=value, got '{pair}'")
        parsed[key.strip()] = value.strip()
    return parsed


def _fail(message: str) -> None:
    typer.echo(message, err=True)
    raise typer.Exit(code=1)


@app.command()
def assign(
    subject_id: str = typer.Option(..., help="Subject identifier."),
    gender: str = typer.Option(..., help="Subject gender (e.g. Male, Female)."),
    age: int = typer.Option(..., help="Subject age in years."),
    name: Optional[str] = typer.Option(None, help="Optional subject name."),
    attribute: Optional[List[str]] = typer.Option(
        None, "--attribute", "-a", help="Extra strata value as name=value (repeatable)."
    ),
    block_size: Optional[int] = typer.Option(None, help="Override the configured block size."),
    config_path: Path = typer.Option(DEFAULT_CONFIG, exists=True, help="Project config."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Assign one subject and append it to the assignment log."""
    app_config = _setup(config_path, verbose)
    try:
        session = build_session(app_config, block_size)
        attributes = session.parse_attributes(_parse_pairs(attribute or []))
        record = session.enroll(subject_id, gender, age, name=name, **attributes)
    except (ValueError, PersistenceError) as exc:
        _fail(f"Assignment failed: {exc}")
    typer.echo(f"{record.subject_id} → [{session.scheme.label(record.strata)}] {record.group}")


@app.command("enroll-batch")
def enroll_batch(
    subjects: Path = typer.Option(..., exists=True, readable=True, help="CSV with subject_id, gender, age[, name] and a column per extra strata dimension."),
    block_size: Optional[int] = typer.Option(None, help="Override the configured block size."),
    config_path: Path = typer.Option(DEFAULT_CONFIG, exists=True, help="Project config."),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Debug logging."),
) -> None:
    """Assign subjects from a CSV in file order within one session."""
    app_config = _setup(config_path, verbose)
    df = pd.read_csv(subjects, dtype=str)
    missing = [c for c in ("subject_id", "gender", "age") if c not in df.columns]
    if missing:
        _fail(f"{subjects} is missing columns: {', '.join(missing)}")
    try:
        session = build_session(app_config, block_size)
        for row in df.to_dict("records"):
            name = row.get("name")
            record = session.enroll(
                row["subject_id"],
                row["gender"],
                int(row["age"]),
                name=None if pd.isna(name) else name,
                **session.parse_attributes(row),
            )
            typer.echo(f"{record.subject_id} → [{session.scheme.label(record.strata)}] {record.group}")
    except (ValueError, PersistenceError) as exc:
        _fail(f"Enrollment stopped: {exc}")
    typer.echo(f"Assigned {len(df)} subjects")


@app.command()
def balance(
    config_path: Path = typer.Option(DEFAULT_CONFIG, exists=True, help="Project config."),
) -> None:
    """Print per-stratum and total arm counts from the assignment log."""
    app_config = _setup(config_path, False)
    try:
        session = build_session(app_config)
    except ValueError as exc:
        _fail(f"Could not load assignments: {exc}")
    typer.echo(session.balance_table().to_string(index=False))


@app.command()
def export(
    output: Path = typer.Option(Path("assignments.xlsx"), help="Spreadsheet path."),
    config_path: Path = typer.Option(DEFAULT_CONFIG, exists=True, help="Project config."),
) -> None:
    """Write the full assignment log to a spreadsheet."""
    app_config = _setup(config_path, False)
    try:
        session = build_session(app_config)
        path = session.export(output)
    except (ValueError, OSError) as exc:
        _fail(f"Export failed: {exc}")
    typer.echo(f"Exported {len(session.history)} assignments to {path}")


@app.command()
def simulate(
    n_subjects: int = typer.Option(100, help="Subjects per simulation."),
    n_simulations: int = typer.Option(200, help="Number of simulations."),
    seed: Optional[int] = typer.Option(None, help="Base seed."),
    female_share: float = typer.Option(0.5, help="Share of female subjects."),
    output: Optional[Path] = typer.Option(None, help="Optional CSV for per-run results."),
    config_path: Path = typer.Option(DEFAULT_CONFIG, exists=True, help="Project config."),
) -> None:
    """Estimate imbalance of the configured scheme on synthetic enrollments."""
    app_config = _setup(config_path, False)
    try:
        config = build_allocation_config(app_config.get("allocation", {}))
        result = simulate_enrollment(
            config,
            n_subjects=n_subjects,
            n_simulations=n_simulations,
            base_seed=seed,
            female_share=female_share,
        )
    except ValueError as exc:
        _fail(f"Simulation failed: {exc}")
    for column, stats in result.summary_stats.items():
        typer.echo(f"{column}: mean={stats['mean']:.2f}, max={stats['max']}")
    for warning in result.warnings:
        typer.echo(f"Warning: {warning}", err=True)
    if output:
        result.runs.to_csv(output, index=False)
        typer.echo(f"Per-run results saved to {output}")


def main():
    app()


if __name__ == "__main__":
    main()
