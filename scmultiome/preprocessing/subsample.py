"""Stratified subsampling of cells, for lightweight demo releases."""

from typing import List

import pandas as pd
from anndata import AnnData


def stratified_subsample(
    df: pd.DataFrame,
    stratify_cols: List[str],
    target_n: int = 50000,
    min_per_group: int = 10,
    random_state: int = 42,
) -> pd.DataFrame:
    """
    Perform stratified subsampling to preserve sample and cell type representation.

    Args:
        df: DataFrame with cell metadata
        stratify_cols: List of columns to stratify by (e.g., ['sample', 'cell_type'])
        target_n: Target total number of cells
        min_per_group: Minimum cells to keep per stratum
        random_state: Seed for the per-stratum draws

    Returns:
        Subsampled DataFrame, rows in their original order
    """
    if len(df) <= target_n:
        print(f"Dataset already has {len(df)} cells, no subsampling needed")
        return df

    missing = [col for col in stratify_cols if col not in df.columns]
    for col in missing:
        print(f"Warning: Column {col} not found, skipping")
    stratify_cols = [col for col in stratify_cols if col in df.columns]

    positions = pd.Series(range(len(df)), index=df.index)

    if not stratify_cols:
        # No stratification columns, random sample
        sampled = positions.sample(n=target_n, random_state=random_state)
        return df.iloc[sorted(sampled.tolist())]

    strat_key = df[stratify_cols].astype(str).agg('_'.join, axis=1)

    # Count cells per stratum
    strat_counts = strat_key.value_counts()
    n_strata = len(strat_counts)

    print(f"Total cells: {len(df)}")
    print(f"Target cells: {target_n}")
    print(f"Number of strata: {n_strata}")

    # Base fraction to get approximately target_n cells
    base_frac = target_n / len(df)

    sampled = []

    for stratum, count in strat_counts.items():
        stratum_pos = positions[(strat_key == stratum).to_numpy()]

        # Calculate number to sample from this stratum
        n_sample = max(min_per_group, int(count * base_frac))
        n_sample = min(n_sample, count)  # Can't sample more than available

        sampled.extend(stratum_pos.sample(n=n_sample, random_state=random_state).tolist())

    result = df.iloc[sorted(sampled)]

    print(f"Sampled {len(result)} cells from {n_strata} strata")

    return result


def subsample_adata(
    adata: AnnData,
    stratify_cols: List[str],
    target_n: int = 50000,
    min_per_group: int = 10,
    random_state: int = 42,
) -> AnnData:
    """Stratified subsample of an AnnData by columns of its obs."""
    kept = stratified_subsample(
        adata.obs,
        stratify_cols,
        target_n=target_n,
        min_per_group=min_per_group,
        random_state=random_state,
    )
    return adata[adata.obs_names.isin(kept.index)].copy()
