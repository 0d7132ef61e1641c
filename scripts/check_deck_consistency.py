"""Check numbers reported on the slides against the experiment outputs."""

from __future__ import annotations

import json
import re
from dataclasses import asdict
from pathlib import Path

from multilevel_leakage.datasets import KNOWN_DATASETS

try:
    from .build_slides import SCHEME_LABELS, fmt2
    from .experiment_manifest import config_digest as _config_digest
except ImportError:
    from build_slides import SCHEME_LABELS, fmt2
    from experiment_manifest import config_digest as _config_digest

PROJECT_ROOT = Path(__file__).resolve().parent.parent
DEFAULT_DECK = PROJECT_ROOT / "slides" / "deck.md"
DEFAULT_STATISTICS = PROJECT_ROOT / "experiments" / "leakage_statistics.json"
DEFAULT_MANIFEST = PROJECT_ROOT / "experiments" / "leakage_manifest.json"


def _read_json(path: Path) -> dict:
    try:
        with open(path, encoding="utf-8") as f:
            return json.load(f)
    except json.JSONDecodeError as exc:
        raise ValueError(f"invalid JSON in {path}: {exc}") from exc
    except OSError as exc:
        raise ValueError(f"failed to read {path}: {exc}") from exc


def _extract_reported_cohort(deck: str) -> tuple[int | None, int | None]:
    pattern = re.compile(
        r"(\d+)\s+subjects\s+observed\s+at\s+up\s+to\s+(\d+)\s+(?:weekly\s+)?visits",
        re.IGNORECASE,
    )
    m = pattern.search(deck)
    if not m:
        return None, None
    return int(m.group(1)), int(m.group(2))


def _extract_reported_seeds(deck: str) -> int | None:
    m = re.search(r"Results across\s+(\d+)\s+(?:simulated cohorts|resampling seeds)", deck)
    return int(m.group(1)) if m else None


def _extract_rmse_table(deck: str) -> dict[str, str]:
    """Map scheme label to the median RMSE string shown in the results table."""
    labels = set(SCHEME_LABELS.values())
    rows: dict[str, str] = {}
    for line in deck.splitlines():
        cells = [c.strip() for c in line.strip().strip("|").split("|")]
        if len(cells) >= 2 and cells[0] in labels and re.fullmatch(r"-?\d+\.\d+", cells[1]):
            rows[cells[0]] = cells[1]
    return rows


def _extract_figure_refs(deck: str) -> list[str]:
    return re.findall(r"!\[[^\]]*\]\(([^)]+\.png)\)", deck)


def _current_digests(manifest: dict) -> dict[str, str]:
    """Digests the current configs would give for the run recorded in *manifest*.

    A known dataset is modelled with its own formula, so the expected model
    spec follows the dataset the manifest names.
    """
    try:
        from .experiment_common import make_cohort_config, make_model_spec
    except ImportError:
        from experiment_common import make_cohort_config, make_model_spec
    dataset = manifest.get("dataset", "simulated")
    overrides = None
    if dataset in KNOWN_DATASETS:
        overrides = {"formula": KNOWN_DATASETS[dataset]["formula"]}
    return {
        "cohort_config_digest": _config_digest(asdict(make_cohort_config())),
        "model_spec_digest": _config_digest(asdict(make_model_spec(overrides))),
    }


def run_checks(
    deck_path: Path,
    statistics_path: Path,
    manifest_path: Path,
    current_digests: dict[str, str] | None = None,
) -> dict:
    """Run consistency checks and return a machine-readable report."""
    issues: list[str] = []
    checks: list[str] = []

    paths_to_check = {
        "deck file": deck_path,
        "statistics file": statistics_path,
        "manifest file": manifest_path,
    }
    for name, path in paths_to_check.items():
        if not path.exists():
            issues.append(f"missing {name}: {path}")
    if issues:
        return {"ok": False, "issues": issues, "checks": checks}

    try:
        deck = deck_path.read_text(encoding="utf-8")
    except OSError as exc:
        issues.append(f"failed to read deck file {deck_path}: {exc}")
        return {"ok": False, "issues": issues, "checks": checks}

    try:
        statistics = _read_json(statistics_path)
        manifest = _read_json(manifest_path)
    except ValueError as exc:
        issues.append(str(exc))
        return {"ok": False, "issues": issues, "checks": checks}

    cohort_cfg = manifest.get("cohort_config", {})
    reported_subjects, reported_visits = _extract_reported_cohort(deck)
    if reported_subjects is None:
        issues.append("could not parse cohort size from deck")
    elif manifest.get("dataset", "simulated") == "simulated":
        checks.append("cohort n_subjects")
        if cohort_cfg.get("n_subjects") != reported_subjects:
            issues.append(
                f"n_subjects mismatch: deck={reported_subjects} "
                f"manifest={cohort_cfg.get('n_subjects')}"
            )
        checks.append("cohort visits")
        n_visits = cohort_cfg.get("n_visits")
        if not isinstance(n_visits, int) or reported_visits > n_visits:
            issues.append(f"visits exceed design: deck={reported_visits} manifest={n_visits}")

    reported_seeds = _extract_reported_seeds(deck)
    if reported_seeds is None:
        issues.append("could not parse number of seeds from deck")
    else:
        checks.append("seed count")
        manifest_seeds = len(manifest.get("seeds", []))
        if reported_seeds != manifest_seeds:
            issues.append(f"seed count mismatch: deck={reported_seeds} manifest={manifest_seeds}")
        if reported_seeds != statistics.get("n_seeds"):
            issues.append(
                f"seed count mismatch: deck={reported_seeds} "
                f"statistics={statistics.get('n_seeds')}"
            )

    table = _extract_rmse_table(deck)
    per_scheme = statistics.get("per_scheme", {})
    if not table:
        issues.append("could not parse RMSE table from deck")
    for scheme, block in per_scheme.items():
        label = SCHEME_LABELS.get(scheme, scheme)
        if label not in table:
            issues.append(f"RMSE table missing scheme: {label}")
            continue
        checks.append(f"median RMSE {scheme}")
        expected = fmt2(block["rmse"]["median"])
        if table[label] != expected:
            issues.append(f"median RMSE mismatch for {scheme}: deck={table[label]} statistics={expected}")

    refs = _extract_figure_refs(deck)
    checks.append("figure references")
    for ref in refs:
        if not (deck_path.parent / ref).exists():
            issues.append(f"figure referenced by deck not found: {ref}")

    digests = current_digests if current_digests is not None else _current_digests(manifest)
    checks.append("manifest config digests")
    for key, digest in digests.items():
        if manifest.get(key) != digest:
            issues.append(f"manifest {key} differs from current configs (rerun experiments)")

    return {"ok": len(issues) == 0, "issues": issues, "checks": checks}


def main() -> int:
    report = run_checks(DEFAULT_DECK, DEFAULT_STATISTICS, DEFAULT_MANIFEST)
    print(json.dumps(report, indent=2))
    return 0 if report["ok"] else 1


if __name__ == "__main__":
    raise SystemExit(main())
