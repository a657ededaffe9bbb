"""Build a multiome (RNA + ATAC) release from a 10x Cellranger-ARC output.

Run once per dataset release. Inputs are the filtered feature matrix, the
authors' per-cell metadata table and their UMAP coordinates; outputs are
the static files served to users:

    rna.h5ad, atac.h5ad, cell_metadata.parquet, manifest.json

Usage:
    python -m scmultiome.preprocessing.multiome \\
        --h5 data/raw/pbmc_multiome/filtered_feature_bc_matrix.h5 \\
        --metadata data/raw/pbmc_multiome/cell_metadata.csv \\
        --coords data/raw/pbmc_multiome/umap.csv \\
        --dataset pbmc_multiome --version v1
"""

import argparse
from pathlib import Path
from typing import Dict, List, Optional, Tuple

import pandas as pd
import scanpy as sc
from anndata import AnnData
from scipy import sparse

from ..datasets import DATASETS, get_config
from .ensembl import fetch_ensembl_mapping, use_feature_ids
from .harmonize import (
    attach_reduced_dims,
    harmonize_columns,
    map_symbols_to_ensembl,
    renumber_samples,
    to_snake_case,
)
from .manifest import write_manifest
from .subsample import stratified_subsample

# Paths
DATA_DIR = Path(__file__).parent.parent.parent / "data"
RELEASE_DIR = DATA_DIR / "release"

# 10x feature type of each experiment
FEATURE_TYPES = {
    "rna": "Gene Expression",
    "atac": "Peaks",
}


def split_modalities(adata: AnnData) -> Dict[str, AnnData]:
    """Split a combined 10x multiome matrix into RNA and ATAC objects."""
    if "feature_types" not in adata.var.columns:
        raise ValueError("Matrix has no var['feature_types']; read it with gex_only=False")

    modalities = {}
    for name, feature_type in FEATURE_TYPES.items():
        mask = (adata.var["feature_types"] == feature_type).to_numpy()
        if not mask.any():
            raise ValueError(f"No '{feature_type}' features found in matrix")
        modalities[name] = adata[:, mask].copy()
        print(f"{name}: {modalities[name].n_vars} features")
    return modalities


def read_table(path: Path, barcode_col: Optional[str] = None) -> pd.DataFrame:
    """Read an author-supplied CSV/TSV indexed by cell barcode."""
    sep = "\t" if Path(path).suffix in (".tsv", ".txt") else ","
    if barcode_col is None:
        table = pd.read_csv(path, sep=sep, index_col=0)
    else:
        table = pd.read_csv(path, sep=sep).set_index(barcode_col)
    table.index = table.index.astype(str)
    table.index.name = None
    return table


def assemble_multiome(
    adata: AnnData,
    metadata: pd.DataFrame,
    coords: Optional[pd.DataFrame] = None,
    sample_col: str = "sample",
    sample_order: Optional[List[str]] = None,
    rename: Optional[Dict[str, str]] = None,
    drop: Optional[List[str]] = None,
    coords_key: str = "X_umap",
    gene_mapping: Optional[pd.DataFrame] = None,
    subsample: Optional[int] = None,
    stratify_cols: Optional[List[str]] = None,
    random_state: int = 42,
) -> Tuple[Dict[str, AnnData], pd.DataFrame]:
    """Turn a combined multiome matrix and author tables into release objects.

    Args:
        adata: Combined matrix from scanpy.read_10x_h5(..., gex_only=False)
        metadata: Per-cell metadata indexed by barcode
        coords: Externally computed embedding indexed by barcode
        sample_col: Sample column of metadata (before harmonization)
        sample_order: Original sample labels in numbering order
        rename: Explicit column renames applied before snake_casing
        drop: Metadata columns to discard
        coords_key: obsm key for the embedding
        gene_mapping: Symbol -> Ensembl ID table (gene_symbol, gene_id). When
            None the IDs of the 10x feature table are used.
        subsample: Keep about this many cells (stratified)
        stratify_cols: Harmonized columns to stratify by; defaults to the sample column
        random_state: Subsampling seed

    Returns:
        Tuple of ({"rna": AnnData, "atac": AnnData}, harmonized metadata)
    """
    modalities = split_modalities(adata)

    # 1. Harmonize metadata columns and renumber samples
    metadata = harmonize_columns(metadata, rename=rename, drop=drop)
    sample_col = to_snake_case((rename or {}).get(sample_col, sample_col))
    metadata, _ = renumber_samples(metadata, sample_col=sample_col, order=sample_order)

    # 2. Keep cells that passed the authors' QC (present in metadata)
    in_matrix = metadata.index.isin(adata.obs_names)
    print(f"{int(in_matrix.sum())}/{adata.n_obs} cells in matrix have metadata")
    if not in_matrix.any():
        raise ValueError("No cell barcodes shared between matrix and metadata")
    metadata = metadata[in_matrix]

    if subsample is not None:
        metadata = stratified_subsample(
            metadata,
            stratify_cols or [sample_col],
            target_n=subsample,
            random_state=random_state,
        )

    for name in modalities:
        modalities[name] = modalities[name][metadata.index].copy()

    # 3. Join externally supplied coordinates
    if coords is not None:
        for mod in modalities.values():
            attach_reduced_dims(mod, coords, key=coords_key)

    # 4. Gene symbols -> Ensembl IDs
    if gene_mapping is None:
        modalities["rna"] = use_feature_ids(modalities["rna"])
    else:
        modalities["rna"] = map_symbols_to_ensembl(modalities["rna"], gene_mapping)

    # Drop 10x bookkeeping columns
    for mod in modalities.values():
        mod.var = mod.var.drop(columns=[c for c in ("gene_ids", "feature_types") if c in mod.var.columns])

    return modalities, metadata


def assemble_unpaired(
    modalities: Dict[str, AnnData],
    metadata: Dict[str, pd.DataFrame],
    sample_col: str = "sample",
    sample_order: Optional[List[str]] = None,
    rename: Optional[Dict[str, str]] = None,
    drop: Optional[List[str]] = None,
) -> Tuple[Dict[str, AnnData], pd.DataFrame]:
    """Turn experiments measured on different cells into release objects.

    Barcodes are prefixed with the experiment name ("rna_AAAC...") so the
    experiments can share one MuData without their cells being merged.

    Args:
        modalities: Experiment name -> matrix
        metadata: Experiment name -> per-cell metadata indexed by barcode
        sample_col: Sample column of every metadata table (before harmonization)
        sample_order: Original sample labels in numbering order
        rename: Explicit column renames applied before snake_casing
        drop: Metadata columns to discard

    Returns:
        Tuple of (prefixed modalities, combined metadata with an 'assay' column)
    """
    prefixed = {}
    tables = []
    for name, adata in modalities.items():
        table = metadata[name]
        table = table[table.index.isin(adata.obs_names)]
        print(f"{name}: {len(table)}/{adata.n_obs} cells have metadata")
        if table.empty:
            raise ValueError(f"No cell barcodes shared between the {name} matrix and its metadata")

        mod = adata[table.index].copy()
        mod.obs_names = [f"{name}_{barcode}" for barcode in table.index]
        table = table.copy()
        table.index = mod.obs_names
        table["assay"] = name
        prefixed[name] = mod
        tables.append(table)

    combined = harmonize_columns(pd.concat(tables), rename=rename, drop=drop)
    sample_col = to_snake_case((rename or {}).get(sample_col, sample_col))
    combined, _ = renumber_samples(combined, sample_col=sample_col, order=sample_order)

    if "rna" in prefixed and "gene_ids" in prefixed["rna"].var.columns:
        prefixed["rna"] = use_feature_ids(prefixed["rna"])
    for mod in prefixed.values():
        mod.var = mod.var.drop(columns=[c for c in ("gene_ids", "feature_types") if c in mod.var.columns])

    return prefixed, combined


def default_stratify_cols(dataset: str, sample_col: str = "sample") -> List[str]:
    """Sample column plus the dataset's configured stratification columns."""
    cols = [to_snake_case(sample_col)]
    if dataset in DATASETS:
        cols += [c for c in get_config(dataset).extra.get("stratify_columns", []) if c not in cols]
    return cols


def write_release(
    modalities: Dict[str, AnnData],
    metadata: pd.DataFrame,
    output_dir: Path,
    dataset: str,
    version: str,
) -> Path:
    """Write experiment h5ad files, the cell metadata and the manifest."""
    output_dir = Path(output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)

    for name, mod in modalities.items():
        if not sparse.issparse(mod.X):
            mod.X = sparse.csr_matrix(mod.X)
        path = output_dir / f"{name}.h5ad"
        mod.write_h5ad(path, compression="gzip")
        print(f"Saved {name} ({mod.n_obs} cells x {mod.n_vars} features) to {path}")

    metadata_path = output_dir / "cell_metadata.parquet"
    metadata.to_parquet(metadata_path)
    print(f"Saved metadata for {len(metadata)} cells to {metadata_path}")

    return write_manifest(output_dir, dataset, version)


def build_multiome(
    h5_path: Path,
    metadata_path: Path,
    output_dir: Path,
    dataset: str,
    version: str,
    coords_path: Optional[Path] = None,
    barcode_col: Optional[str] = None,
    coords_barcode_col: Optional[str] = None,
    species: Optional[str] = None,
    **kwargs,
) -> Dict[str, AnnData]:
    """Full ingestion: read inputs, assemble, write the release directory.

    With ``species`` set, gene symbols are mapped through Ensembl BioMart
    instead of the IDs in the 10x feature table.
    """
    print(f"Loading 10x matrix: {h5_path}")
    adata = sc.read_10x_h5(h5_path, gex_only=False)
    print(f"Loaded {adata.n_obs} cells, {adata.n_vars} features")

    print(f"Loading cell metadata: {metadata_path}")
    metadata = read_table(metadata_path, barcode_col=barcode_col)

    coords = None
    if coords_path is not None:
        print(f"Loading coordinates: {coords_path}")
        coords = read_table(coords_path, barcode_col=coords_barcode_col)

    if species is not None:
        kwargs["gene_mapping"] = fetch_ensembl_mapping(species)

    modalities, metadata = assemble_multiome(adata, metadata, coords=coords, **kwargs)
    write_release(modalities, metadata, output_dir, dataset, version)
    return modalities


def print_release_summary(modalities: Dict[str, AnnData], metadata: pd.DataFrame):
    """Print summary statistics of a release."""
    print("\n=== Release Summary ===")
    print(f"Total cells: {len(metadata)}")
    for name, mod in modalities.items():
        print(f"  {name}: {mod.n_vars} features, obsm keys {list(mod.obsm.keys())}")

    if "sample" in metadata.columns:
        print("\nCells per sample:")
        print(metadata["sample"].value_counts().sort_index())


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Build a multiome release from Cellranger-ARC output")
    parser.add_argument("--h5", type=Path, required=True, help="filtered_feature_bc_matrix.h5")
    parser.add_argument("--metadata", type=Path, required=True, help="Per-cell metadata CSV/TSV")
    parser.add_argument("--coords", type=Path, default=None, help="UMAP coordinates CSV/TSV")
    parser.add_argument("--dataset", required=True, help="Dataset name (e.g., pbmc_multiome)")
    parser.add_argument("--version", default="v1", help="Release version (default: v1)")
    parser.add_argument(
        "--output-dir",
        type=Path,
        default=None,
        help="Output directory (default: data/release/<dataset>/<version>)",
    )
    parser.add_argument("--sample-col", default="sample", help="Sample column of the metadata")
    parser.add_argument("--sample-order", nargs="+", default=None, help="Original sample labels in numbering order")
    parser.add_argument("--barcode-col", default=None, help="Barcode column of the metadata (default: first column)")
    parser.add_argument("--coords-barcode-col", default=None, help="Barcode column of the coordinates")
    parser.add_argument(
        "--species",
        choices=["human", "mouse"],
        default=None,
        help="Map gene symbols through Ensembl BioMart (default: use 10x feature IDs)",
    )
    parser.add_argument("--subsample", type=int, default=None, help="Keep about this many cells")
    args = parser.parse_args()

    output_dir = args.output_dir or RELEASE_DIR / args.dataset / args.version
    modalities = build_multiome(
        args.h5,
        args.metadata,
        output_dir,
        args.dataset,
        args.version,
        coords_path=args.coords,
        barcode_col=args.barcode_col,
        coords_barcode_col=args.coords_barcode_col,
        species=args.species,
        sample_col=args.sample_col,
        sample_order=args.sample_order,
        subsample=args.subsample,
        stratify_cols=default_stratify_cols(args.dataset, args.sample_col),
    )
    metadata = pd.read_parquet(output_dir / "cell_metadata.parquet")
    print_release_summary(modalities, metadata)
