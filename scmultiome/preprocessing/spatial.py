"""Build a spatial transcriptomics release from 10x Visium sections.

Expects one filtered matrix and one tissue positions file per section:

    <sample>_filtered_feature_bc_matrix.h5
    <sample>_tissue_positions_list.csv   (or <sample>_tissue_positions.csv)

All sections are combined into a single AnnData with pixel coordinates in
obsm['spatial']; spots are renamed "<renumbered sample>_<barcode>".

Usage:
    python -m scmultiome.preprocessing.spatial \\
        --sections-dir data/raw/mouse_brain_visium --dataset mouse_brain_visium
"""

import argparse
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import anndata as ad
import pandas as pd
import scanpy as sc
from anndata import AnnData

from .ensembl import use_feature_ids
from .harmonize import harmonize_columns, renumber_samples
from .multiome import RELEASE_DIR, write_release

MATRIX_SUFFIX = "_filtered_feature_bc_matrix.h5"
POSITIONS_SUFFIXES = ["_tissue_positions_list.csv", "_tissue_positions.csv"]

POSITION_COLUMNS = [
    "barcode", "in_tissue", "array_row", "array_col", "pxl_row_in_fullres", "pxl_col_in_fullres",
]


def read_tissue_positions(path: Path) -> pd.DataFrame:
    """Read a Space Ranger tissue positions file (with or without header).

    Returns:
        DataFrame indexed by barcode with in_tissue, array_row, array_col,
        pxl_row_in_fullres, pxl_col_in_fullres
    """
    df = pd.read_csv(path, header=None, names=POSITION_COLUMNS, dtype=str)
    # Space Ranger >= 2.0 writes a header line
    df = df[df["barcode"] != "barcode"]
    df = df.set_index("barcode")
    df.index.name = None
    return df.astype({
        "in_tissue": int,
        "array_row": int,
        "array_col": int,
        "pxl_row_in_fullres": float,
        "pxl_col_in_fullres": float,
    })


def find_sections(sections_dir: Path) -> Dict[str, Tuple[Path, Path]]:
    """Pair each section's matrix with its positions file."""
    sections = {}
    for h5_file in sorted(Path(sections_dir).glob(f"*{MATRIX_SUFFIX}")):
        sample = h5_file.name[: -len(MATRIX_SUFFIX)]
        positions = [h5_file.with_name(sample + suffix) for suffix in POSITIONS_SUFFIXES]
        positions = [p for p in positions if p.exists()]
        if not positions:
            print(f"  WARNING: No tissue positions for {sample}, skipping")
            continue
        sections[sample] = (h5_file, positions[0])

    print(f"Found {len(sections)} sections in {sections_dir}")
    return sections


def assemble_sections(
    sections: Dict[str, AnnData],
    positions: Dict[str, pd.DataFrame],
    sample_order: Optional[List[str]] = None,
) -> Tuple[AnnData, pd.DataFrame]:
    """Combine Visium sections into one object with spot coordinates.

    Args:
        sections: Sample -> matrix read with scanpy.read_10x_h5
        positions: Sample -> output of read_tissue_positions
        sample_order: Original sample labels in numbering order

    Returns:
        Tuple of (combined AnnData indexed by Ensembl ID, per-spot metadata)
    """
    pieces = []
    for sample, adata in sections.items():
        print(f"\nProcessing {sample}...")
        spots = positions[sample]
        spots = spots[spots["in_tissue"] == 1]

        common_barcodes = spots.index.intersection(adata.obs_names)
        print(f"  {len(common_barcodes)} in-tissue spots with both expression and coords")
        if len(common_barcodes) == 0:
            print(f"  WARNING: No usable spots for {sample}, skipping")
            continue

        piece = use_feature_ids(adata[common_barcodes])
        spots = spots.loc[common_barcodes]
        piece.obs = pd.DataFrame(
            {
                "sample": sample,
                "barcode": common_barcodes.to_numpy(),
                "array_row": spots["array_row"].to_numpy(),
                "array_col": spots["array_col"].to_numpy(),
            },
            index=[f"{sample}_{bc}" for bc in common_barcodes],
        )
        # x = column, y = row, as scanpy's spatial plots expect
        piece.obsm["spatial"] = spots[["pxl_col_in_fullres", "pxl_row_in_fullres"]].to_numpy(dtype=float)
        pieces.append(piece)

    if not pieces:
        raise ValueError("No section had in-tissue spots with expression data")

    combined = ad.concat(pieces, join="inner", merge="same")
    combined.var = combined.var.drop(columns=[c for c in ("feature_types",) if c in combined.var.columns])

    obs = harmonize_columns(combined.obs)
    obs, _ = renumber_samples(obs, sample_col="sample", order=sample_order)
    obs.index = (obs["sample"].astype(str) + "_" + obs["barcode"].astype(str)).to_numpy()
    combined.obs = obs

    print("\n=== Combined Data ===")
    print(f"Total spots: {combined.n_obs}")
    print(f"Genes: {combined.n_vars}")
    print(f"Samples: {obs['sample'].nunique()}")

    return combined, obs.copy()


def build_visium(
    sections_dir: Path,
    output_dir: Path,
    dataset: str,
    version: str,
    sample_order: Optional[List[str]] = None,
) -> AnnData:
    """Full ingestion: read every section, combine, write the release directory."""
    sections = {}
    positions = {}
    for sample, (h5_file, positions_file) in find_sections(sections_dir).items():
        sections[sample] = sc.read_10x_h5(h5_file)
        positions[sample] = read_tissue_positions(positions_file)

    combined, metadata = assemble_sections(sections, positions, sample_order=sample_order)
    write_release({"spatial": combined}, metadata, output_dir, dataset, version)
    return combined


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Build a Visium release from Space Ranger outputs")
    parser.add_argument("--sections-dir", type=Path, required=True, help="Directory of per-section files")
    parser.add_argument("--dataset", required=True, help="Dataset name (e.g., mouse_brain_visium)")
    parser.add_argument("--version", default="v1", help="Release version (default: v1)")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Output directory (default: data/release/<dataset>/<version>)",
    )
    parser.add_argument("--sample-order", nargs="+", default=None, help="Section labels in numbering order")
    args = parser.parse_args()

    output_dir = args.output_dir or RELEASE_DIR / args.dataset / args.version
    build_visium(args.sections_dir, output_dir, args.dataset, args.version, sample_order=args.sample_order)
