"""Export module - save results to JSON, Parquet and CSV."""

import json
import logging
from datetime import date
from pathlib import Path

import numpy as np
import pandas as pd

from .decomposition import PCAResult, pca_summary
from .validation import get_cluster_members

logger = logging.getLogger(__name__)


def export_assignments_json(
    labels: np.ndarray,
    ids: list[str],
    output_path: str | Path,
) -> None:
    """
    Export cluster assignments to JSON.

    Format:
        [{"cluster": 0, "members": [...], "size": N}, ...]
    """
    output = [
        {"cluster": cluster_id, "members": members, "size": len(members)}
        for cluster_id, members in get_cluster_members(labels, ids).items()
    ]

    with open(output_path, "w") as f:
        json.dump(output, f, indent=2)


def export_assignments_parquet(
    labels: np.ndarray,
    ids: list[str],
    output_path: str | Path,
    method: str | None = None,
) -> None:
    """
    Export cluster assignments to Parquet.

    Schema:
        analysis_date, observation, cluster_id, [method]
    """
    df = pd.DataFrame({
        "analysis_date": date.today().isoformat(),
        "observation": [str(i) for i in ids],
        "cluster_id": [int(label) for label in labels],
    })
    if method:
        df["method"] = method
    df.to_parquet(output_path, compression="snappy", index=False)


def export_profiles_csv(profile: pd.DataFrame, output_path: str | Path) -> None:
    """Export per-cluster feature means."""
    profile.to_csv(output_path, index_label="cluster", float_format="%.4f")


def export_pca_csv(
    result: PCAResult,
    output_dir: str | Path,
    prefix: str = "pca",
) -> dict[str, Path]:
    """Export PCA loadings, scores and variance summary as CSV files."""
    output_dir = Path(output_dir)
    paths = {
        "loadings": output_dir / f"{prefix}_loadings.csv",
        "scores": output_dir / f"{prefix}_scores.csv",
        "variance": output_dir / f"{prefix}_variance.csv",
    }
    result.loadings.to_csv(paths["loadings"], float_format="%.6f")
    result.scores.to_csv(paths["scores"], float_format="%.6f")
    pca_summary(result).to_csv(paths["variance"], index_label="component", float_format="%.6f")
    return paths


def export_all(
    output_dir: str | Path,
    clusterings: dict[str, tuple[np.ndarray, list[str]]] | None = None,
    profiles: dict[str, pd.DataFrame] | None = None,
    pca_results: dict[str, PCAResult] | None = None,
    export_json: bool = True,
    export_parquet: bool = True,
) -> dict[str, Path]:
    """
    Export all results to output directory.

    Args:
        output_dir: Output directory path
        clusterings: name -> (labels, observation ids)
        profiles: name -> per-cluster profile table
        pca_results: name -> PCAResult
        export_json: Export cluster assignments as JSON
        export_parquet: Export cluster assignments as Parquet

    Returns:
        Dictionary of output file paths
    """
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    output_files: dict[str, Path] = {}

    for name, (labels, ids) in (clusterings or {}).items():
        if export_json:
            path = output_dir / f"{name}_clusters.json"
            export_assignments_json(labels, ids, path)
            output_files[f"{name}_json"] = path

        if export_parquet:
            path = output_dir / f"{name}_clusters.parquet"
            export_assignments_parquet(labels, ids, path, method=name)
            output_files[f"{name}_parquet"] = path

    for name, profile in (profiles or {}).items():
        path = output_dir / f"{name}_profiles.csv"
        export_profiles_csv(profile, path)
        output_files[f"{name}_profiles"] = path

    for name, result in (pca_results or {}).items():
        for kind, path in export_pca_csv(result, output_dir, prefix=name).items():
            output_files[f"{name}_{kind}"] = path

    logger.info(f"Exported {len(output_files)} files to {output_dir}")
    return output_files
