"""Harmonization helpers used by the ingestion scripts.

Covers the recurring clean-up steps when turning an author-supplied release
into a dataset: renumbering samples, renaming per-cell columns, joining
externally computed embeddings and switching gene symbols to Ensembl IDs.
"""

import re
from typing import Dict, List, Optional, Sequence, Tuple

import numpy as np
import pandas as pd
from anndata import AnnData


def to_snake_case(name: str) -> str:
    """Convert a column name to snake_case.

    Examples: "nCount_RNA" -> "n_count_rna", "TSSEnrichment" -> "tss_enrichment",
    "Sample ID" -> "sample_id", "percent.mt" -> "percent_mt".
    """
    s = re.sub(r"[\s\-\.]+", "_", str(name).strip())
    s = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1_\2", s)
    s = re.sub(r"([a-z0-9])([A-Z])", r"\1_\2", s)
    s = re.sub(r"_+", "_", s).strip("_")
    return s.lower()


def renumber_samples(
    obs: pd.DataFrame,
    sample_col: str = "sample",
    prefix: str = "Sample",
    order: Optional[Sequence[str]] = None,
) -> Tuple[pd.DataFrame, Dict[str, str]]:
    """Replace sample labels with sequential ones (Sample1, Sample2, ...).

    Args:
        obs: Per-cell metadata
        sample_col: Column holding the sample label
        prefix: Prefix of the new labels
        order: Original labels in the desired numbering order. Defaults to
            order of first appearance.

    Returns:
        Tuple of (copy of obs with renumbered labels, original -> new mapping).
        The original label is kept in ``<sample_col>_original``.
    """
    if sample_col not in obs.columns:
        raise ValueError(f"Sample column {sample_col!r} not found. Available: {list(obs.columns)}")

    labels = obs[sample_col]
    n_missing = int(labels.isna().sum())
    if n_missing:
        raise ValueError(f"{n_missing} cells have no {sample_col!r} label")
    labels = labels.astype(str)

    present = list(pd.unique(labels))
    if order is None:
        order = present
    else:
        # Repeated labels keep their first position
        order = list(dict.fromkeys(str(label) for label in order))
        unknown = [label for label in present if label not in order]
        if unknown:
            raise ValueError(f"Sample labels missing from order: {unknown}")
        order = [label for label in order if label in present]

    mapping = {label: f"{prefix}{i}" for i, label in enumerate(order, start=1)}

    obs = obs.copy()
    obs[f"{sample_col}_original"] = labels.values
    obs[sample_col] = pd.Categorical(
        labels.map(mapping).values,
        categories=[mapping[label] for label in order],
    )

    print(f"Renumbered {len(mapping)} samples:")
    for original, new in mapping.items():
        print(f"  {original} -> {new}")

    return obs, mapping


def harmonize_columns(
    obs: pd.DataFrame,
    rename: Optional[Dict[str, str]] = None,
    drop: Optional[List[str]] = None,
    snake_case: bool = True,
) -> pd.DataFrame:
    """Rename, drop and snake_case per-cell metadata columns.

    ``drop`` refers to the original column names; absent columns are ignored.
    Raises ValueError when two columns end up with the same name.
    """
    obs = obs.copy()

    if drop:
        obs = obs.drop(columns=[c for c in drop if c in obs.columns])
    if rename:
        obs = obs.rename(columns=rename)

    new_names = pd.Index([to_snake_case(c) if snake_case else str(c) for c in obs.columns])
    collisions = new_names[new_names.duplicated()].unique().tolist()
    if collisions:
        raise ValueError(f"Columns collide after harmonization: {collisions}")

    obs.columns = new_names
    return obs


def attach_reduced_dims(
    adata: AnnData,
    coords: pd.DataFrame,
    key: str = "X_umap",
    columns: Optional[List[str]] = None,
    barcode_col: Optional[str] = None,
    strict: bool = False,
) -> int:
    """Join externally computed coordinates into ``adata.obsm[key]``.

    Args:
        adata: Target object; modified in place
        coords: Table of coordinates, indexed by cell barcode unless barcode_col is set
        key: obsm key to write
        columns: Coordinate columns in order; all numeric columns when None
        barcode_col: Column of coords holding the cell barcode
        strict: Raise if any cell of adata has no coordinates

    Returns:
        Number of cells with coordinates. Cells without get NaN rows.
    """
    if barcode_col is not None:
        coords = coords.set_index(barcode_col)
    if coords.index.duplicated().any():
        raise ValueError("Coordinate table has duplicated barcodes")

    if columns is None:
        columns = [c for c in coords.columns if pd.api.types.is_numeric_dtype(coords[c])]
    if not columns:
        raise ValueError("No numeric coordinate columns found")

    n_matched = int(adata.obs_names.isin(coords.index).sum())
    if strict and n_matched < adata.n_obs:
        raise ValueError(f"{adata.n_obs - n_matched} of {adata.n_obs} cells have no coordinates")

    adata.obsm[key] = coords.reindex(adata.obs_names)[columns].to_numpy(dtype=float)
    print(f"Attached {key} ({len(columns)} dims) for {n_matched}/{adata.n_obs} cells")
    return n_matched


def map_symbols_to_ensembl(
    adata: AnnData,
    mapping: pd.DataFrame,
    symbol_col: str = "gene_symbol",
    id_col: str = "gene_id",
    drop_unmapped: bool = False,
) -> AnnData:
    """Switch var_names from gene symbols to Ensembl gene IDs.

    Args:
        adata: Object whose var_names are gene symbols
        mapping: Table with symbol and Ensembl ID columns
        symbol_col: Symbol column of mapping
        id_col: Ensembl ID column of mapping
        drop_unmapped: Drop genes without an ID instead of keeping the symbol

    Returns:
        Copy of adata indexed by Ensembl ID, with the symbol in var['gene_symbol'].
        A symbol with several IDs takes the first one in mapping; when several
        genes land on the same ID only the first is kept.
    """
    mapping = mapping.dropna(subset=[symbol_col, id_col])
    n_ids = mapping.groupby(symbol_col)[id_col].nunique()
    lookup = mapping.drop_duplicates(subset=[symbol_col], keep="first").set_index(symbol_col)[id_col]

    symbols = pd.Series(np.asarray(adata.var_names, dtype=str))
    ids = symbols.map(lookup)
    unmapped = ids.isna().to_numpy()

    if drop_unmapped:
        keep = ~unmapped
    else:
        ids = ids.fillna(symbols)
        keep = np.ones(len(ids), dtype=bool)

    collapsed = ids.where(keep).duplicated(keep="first").to_numpy() & keep
    keep = keep & ~collapsed

    n_multi = int(symbols[~unmapped].map(n_ids).gt(1).sum())
    print(f"Mapped {int((~unmapped).sum())}/{len(symbols)} gene symbols to Ensembl IDs")
    if n_multi:
        print(f"  {n_multi} symbols have several IDs; used the first")
    if unmapped.any():
        action = "dropped" if drop_unmapped else "kept under their symbol"
        print(f"  {int(unmapped.sum())} unmapped genes {action}")
    if collapsed.any():
        print(f"  {int(collapsed.sum())} genes dropped as duplicates of an earlier ID")

    out = adata[:, keep].copy()
    out.var["gene_symbol"] = symbols[keep].to_numpy()
    out.var_names = pd.Index(ids[keep].astype(str).to_numpy())
    return out
