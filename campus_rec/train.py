"""
campus_rec/train.py

Runs the three engagement/outcome scenarios and saves their results for the
reporting side:

      artifacts/config.json             (run settings)
      artifacts/data_schema.json        (columns, dtypes, missing rates, descriptions)
      artifacts/summary.json            (status + headline metrics per scenario)
      artifacts/<scenario>/metrics.json
      artifacts/<scenario>/coefficients.csv
      artifacts/<scenario>/confusion_matrix.csv
      artifacts/<scenario>/pipeline.json
      artifacts/<scenario>/predictions.csv
      artifacts/<scenario>/tuning_cells.csv      (APR scenarios)
      artifacts/<scenario>/tuning_summary.csv    (APR scenarios)
      artifacts/<scenario>/best_config.json      (APR scenarios)

Run (default)
-------------
python -m campus_rec.make_synthetic_data
python -m campus_rec.train

Run (custom)
------------
python -m campus_rec.train --data data/joined.csv --seed 7 --n-jobs -1
"""

from __future__ import annotations

import argparse
import json
import logging
from pathlib import Path
from typing import Dict

import numpy as np
import pandas as pd

from campus_rec.analysis import ScenarioResult, run_analysis
from campus_rec.config import (
    ARTIFACT_DIR,
    CLASSIFICATION_THRESHOLD,
    DEFAULT_DATA_PATH,
    DEFAULT_SEED,
    METRICS,
    N_FOLDS,
    RATIO_GRID_MAX,
    RATIO_GRID_MIN,
    RATIO_GRID_SIZE,
    SELECTION_METRIC,
    AnalysisConfig,
)
from campus_rec.data_dictionary import DATA_DICTIONARY
from campus_rec.scenarios import default_scenarios


def parse_args(argv=None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Estimate recreation engagement effects on student success.")
    parser.add_argument(
        "--data",
        type=str,
        default=str(DEFAULT_DATA_PATH),
        help="Path to the joined CSV dataset.",
    )
    parser.add_argument(
        "--out",
        type=str,
        default=str(ARTIFACT_DIR),
        help="Directory for result artifacts.",
    )
    parser.add_argument("--seed", type=int, default=DEFAULT_SEED, help="Seed for split, folds and downsampling.")
    parser.add_argument("--folds", type=int, default=N_FOLDS, help="Cross-validation folds.")
    parser.add_argument("--grid-min", type=float, default=RATIO_GRID_MIN)
    parser.add_argument("--grid-max", type=float, default=RATIO_GRID_MAX)
    parser.add_argument("--grid-size", type=int, default=RATIO_GRID_SIZE)
    parser.add_argument(
        "--selection-metric",
        choices=METRICS,
        default=SELECTION_METRIC,
        help="Metric whose best ratio is used for the final refit.",
    )
    parser.add_argument(
        "--threshold",
        type=float,
        default=CLASSIFICATION_THRESHOLD,
        help="Probability threshold for class predictions.",
    )
    parser.add_argument("--n-jobs", type=int, default=1, help="Workers for tuning cells (-1 = all cores).")
    parser.add_argument("--scenario-jobs", type=int, default=1, help="Scenarios to run concurrently.")
    parser.add_argument(
        "--checkpoint-dir",
        type=str,
        default=None,
        help="Persist tuning cells here and resume from them on rerun.",
    )
    parser.add_argument("--verbose", action="store_true", help="Debug logging.")
    return parser.parse_args(argv)


def build_data_schema(df: pd.DataFrame) -> Dict:
    """Column names, dtypes, missing rates and descriptions of the input table."""
    return {
        "n_rows": int(df.shape[0]),
        "n_cols": int(df.shape[1]),
        "columns": [
            {
                "name": c,
                "dtype": str(df[c].dtype),
                "missing_rate": float(df[c].isna().mean()),
                "description": DATA_DICTIONARY.get(c),
            }
            for c in df.columns
        ],
    }


def _dump_json(path: Path, payload) -> None:
    path.write_text(json.dumps(payload, indent=2, default=_json_default))


def _json_default(value):
    if isinstance(value, np.generic):
        return value.item()
    return str(value)


def save_scenario(result: ScenarioResult, out_dir: Path) -> None:
    scen_dir = out_dir / result.name
    scen_dir.mkdir(parents=True, exist_ok=True)

    _dump_json(scen_dir / "metrics.json", result.to_dict())
    if not result.ok:
        return

    final = result.final
    final.coefficients.to_csv(scen_dir / "coefficients.csv", index=False)
    final.evaluation.confusion_matrix.to_csv(scen_dir / "confusion_matrix.csv")
    final.evaluation.predictions.to_csv(scen_dir / "predictions.csv", index_label="row")
    _dump_json(scen_dir / "pipeline.json", final.pipeline_summary)

    if result.tuning is not None:
        result.tuning.cells.to_csv(scen_dir / "tuning_cells.csv", index=False)
        result.tuning.summary.to_csv(scen_dir / "tuning_summary.csv", index=False)
        _dump_json(
            scen_dir / "best_config.json",
            {
                "best_by_metric": result.tuning.best,
                "selection_metric": result.selection_metric,
                "selected_ratio": result.selected_ratio,
                "invalid_cell_policy": result.tuning.invalid_cell_policy,
            },
        )


def main(argv=None) -> int:
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    data_path = Path(args.data)
    if not data_path.exists():
        raise FileNotFoundError(
            f"Joined dataset not found at {data_path}. "
            f"Generate it first: python -m campus_rec.make_synthetic_data"
        )

    out_dir = Path(args.out)
    out_dir.mkdir(parents=True, exist_ok=True)

    config = AnalysisConfig(
        seed=args.seed,
        n_folds=args.folds,
        grid_min=args.grid_min,
        grid_max=args.grid_max,
        grid_size=args.grid_size,
        selection_metric=args.selection_metric,
        threshold=args.threshold,
        n_jobs=args.n_jobs,
        scenario_jobs=args.scenario_jobs,
        checkpoint_dir=Path(args.checkpoint_dir) if args.checkpoint_dir else None,
    )

    # -----------------------------
    # 1) Load data
    # -----------------------------
    df = pd.read_csv(data_path)
    scenarios = default_scenarios(list(df.columns), seed=config.seed)

    # -----------------------------
    # 2) Run scenarios
    # -----------------------------
    results = run_analysis(df, scenarios, config)

    # -----------------------------
    # 3) Save artifacts
    # -----------------------------
    _dump_json(out_dir / "config.json", {"data_path": str(data_path), **config.to_dict()})
    _dump_json(out_dir / "data_schema.json", build_data_schema(df))
    _dump_json(out_dir / "summary.json", [r.to_dict() for r in results.values()])
    for result in results.values():
        save_scenario(result, out_dir)

    print("Analysis complete.")
    print(f"Saved artifacts to: {out_dir.resolve()}")
    for result in results.values():
        if not result.ok:
            print(f"{result.name}: FAILED ({result.error_type}) {result.error}")
            continue
        m = result.final.metrics
        ratio = f" | ratio={result.selected_ratio:.3f}" if result.selected_ratio is not None else ""
        print(
            f"{result.name}: Acc={m['accuracy']:.3f} Precision={m['precision']:.3f} "
            f"Recall={m['recall']:.3f} F1={m['f1']:.3f} ROC-AUC={m['roc_auc']:.3f}{ratio}"
        )

    return 0 if all(r.ok for r in results.values()) else 1


if __name__ == "__main__":
    raise SystemExit(main())
