"""Unified data loading interface for the released datasets."""

from typing import Callable, Dict, List, Optional, Sequence, Union

import pandas as pd
import requests
import scanpy as sc
from anndata import AnnData
from mudata import MuData

from ..cache import DataCache
from ..preprocessing.manifest import read_manifest
from ..settings import get_settings
from .base import DatasetConfig, ExperimentConfig

# S3 answers 403 instead of 404 for missing keys in unlistable buckets
MISSING_STATUS_CODES = (403, 404)

# Registry of available datasets (filled in by the catalog module)
DATASETS: Dict[str, Callable[[], DatasetConfig]] = {}

CELL_METADATA = "cell_metadata"


def register_dataset(name: str, factory: Callable[[], DatasetConfig]):
    """Add a dataset config factory to the registry."""
    DATASETS[name] = factory


def get_available_datasets() -> List[str]:
    """Return list of all registered dataset names."""
    return list(DATASETS.keys())


def get_config(name: str) -> DatasetConfig:
    """Get configuration for a dataset.

    Args:
        name: Dataset name (e.g., "pbmc_multiome")

    Returns:
        DatasetConfig instance
    """
    if name not in DATASETS:
        raise ValueError(f"Unknown dataset: {name}. Available: {list(DATASETS.keys())}")
    return DATASETS[name]()


def list_datasets() -> pd.DataFrame:
    """One row per registered dataset with its main attributes."""
    rows = []
    for name in DATASETS:
        config = get_config(name)
        rows.append({
            "name": config.name,
            "title": config.title,
            "species": config.species,
            "genome": config.genome,
            "version": config.version,
            "modalities": ", ".join(config.modalities),
            "experiments": ", ".join(config.experiment_names),
            "paired": config.paired,
            "description": config.description,
        })
    return pd.DataFrame(rows)


def _resolve_cache(cache: Optional[DataCache]) -> DataCache:
    return cache if cache is not None else DataCache()


def _select_experiments(
    config: DatasetConfig,
    experiments: Optional[Union[str, Sequence[str]]],
) -> List[ExperimentConfig]:
    if experiments is None:
        return list(config.experiments)
    if isinstance(experiments, str):
        experiments = [experiments]

    selected = []
    for name in experiments:
        experiment = config.get_experiment(name)
        if experiment not in selected:
            selected.append(experiment)
    if not selected:
        raise ValueError(f"No experiments selected for dataset {config.name!r}")
    return selected


def dataset_files(
    name: str,
    experiments: Optional[Union[str, Sequence[str]]] = None,
    cache: Optional[DataCache] = None,
    base_url: Optional[str] = None,
) -> pd.DataFrame:
    """Table of remote files that make up a dataset, and whether each is cached.

    Args:
        name: Dataset name
        experiments: Experiments to include; all when None
        cache: DataCache to check against
        base_url: Release host; the configured one when None

    Returns:
        DataFrame with columns experiment, file_name, url, cached, path
    """
    config = get_config(name)
    cache = _resolve_cache(cache)
    base_url = base_url or get_settings().base_url

    entries = [(e.name, e.file_name) for e in _select_experiments(config, experiments)]
    if config.cell_metadata_file:
        entries.append((CELL_METADATA, config.cell_metadata_file))

    rows = []
    for experiment, file_name in entries:
        url = config.url_for(file_name, base_url)
        rows.append({
            "experiment": experiment,
            "file_name": file_name,
            "url": url,
            "cached": cache.is_cached(url),
            "path": str(cache.path_for(url)),
        })
    return pd.DataFrame(rows, columns=["experiment", "file_name", "url", "cached", "path"])


def fetch_manifest(
    config: DatasetConfig,
    cache: Optional[DataCache] = None,
    base_url: Optional[str] = None,
) -> Dict[str, str]:
    """Fetch the release manifest of a dataset.

    Returns:
        Mapping of file name to expected SHA-256; empty when the manifest
        is unavailable
    """
    cache = _resolve_cache(cache)
    base_url = base_url or get_settings().base_url
    url = config.manifest_url(base_url)

    try:
        path = cache.fetch(url)
    except FileNotFoundError:
        print(f"Warning: manifest for {config.name} is not cached; skipping checksum verification")
        return {}
    except requests.HTTPError as e:
        if e.response is not None and e.response.status_code in MISSING_STATUS_CODES:
            print(f"Warning: no manifest published for {config.name}; skipping checksum verification")
            return {}
        raise

    return read_manifest(path)


def _fetch_file(
    config: DatasetConfig,
    file_name: str,
    cache: DataCache,
    base_url: str,
    checksums: Dict[str, str],
):
    url = config.url_for(file_name, base_url)
    return url, cache.fetch(url, sha256=checksums.get(file_name))


def _check_unpaired(config: DatasetConfig, modalities: Dict[str, AnnData]):
    """Experiments of an unpaired dataset must not share cell barcodes."""
    seen = {}
    for name, adata in modalities.items():
        for other, obs_names in seen.items():
            shared = adata.obs_names.intersection(obs_names)
            if len(shared):
                raise ValueError(
                    f"Experiments {other!r} and {name!r} of unpaired dataset {config.name!r} "
                    f"share {len(shared)} cell barcodes (e.g. {shared[0]!r}); "
                    f"barcodes of unpaired experiments must be prefixed by experiment"
                )
        seen[name] = adata.obs_names


def _join_cell_metadata(obs: pd.DataFrame, metadata: pd.DataFrame) -> pd.DataFrame:
    """Left-join per-cell metadata onto obs without overwriting existing columns."""
    new_cols = [c for c in metadata.columns if c not in obs.columns]
    if not new_cols:
        return obs
    missing = (~obs.index.isin(metadata.index)).sum()
    if missing:
        print(f"Warning: {missing} of {len(obs)} cells have no entry in the cell metadata")
    return obs.join(metadata[new_cols], how="left")


def load_experiment(
    name: str,
    experiment: str,
    cache: Optional[DataCache] = None,
    verify: bool = True,
) -> AnnData:
    """Load a single experiment of a dataset as AnnData, without cell metadata."""
    config = get_config(name)
    cache = _resolve_cache(cache)
    base_url = get_settings().base_url
    checksums = fetch_manifest(config, cache, base_url) if verify else {}

    exp = config.get_experiment(experiment)
    _, path = _fetch_file(config, exp.file_name, cache, base_url, checksums)
    return sc.read_h5ad(path)


def load_cell_metadata(
    name: str,
    cache: Optional[DataCache] = None,
    verify: bool = True,
) -> Optional[pd.DataFrame]:
    """Load the per-cell table shared by a dataset's experiments (None if it has none)."""
    config = get_config(name)
    if not config.cell_metadata_file:
        return None
    cache = _resolve_cache(cache)
    base_url = get_settings().base_url
    checksums = fetch_manifest(config, cache, base_url) if verify else {}

    _, path = _fetch_file(config, config.cell_metadata_file, cache, base_url, checksums)
    return pd.read_parquet(path)


def load_dataset(
    name: str,
    experiments: Optional[Union[str, Sequence[str]]] = None,
    metadata_only: bool = False,
    cache: Optional[DataCache] = None,
    verify: bool = True,
):
    """Download (or reuse cached) files of a dataset and assemble them.

    Args:
        name: Dataset name (e.g., "pbmc_multiome")
        experiments: Experiment name or list of names; all when None
        metadata_only: Return the table of files instead of loading data
        cache: DataCache to use; a default one when None
        verify: Check downloads against the release manifest

    Returns:
        DataFrame of files when metadata_only; AnnData when a single
        experiment is selected; MuData otherwise
    """
    config = get_config(name)
    cache = _resolve_cache(cache)
    selected = _select_experiments(config, experiments)

    if metadata_only:
        return dataset_files(name, [e.name for e in selected], cache=cache)

    base_url = get_settings().base_url
    checksums = fetch_manifest(config, cache, base_url) if verify else {}

    urls = []
    modalities = {}
    for experiment in selected:
        url, path = _fetch_file(config, experiment.file_name, cache, base_url, checksums)
        urls.append(url)
        if cache.verbose:
            print(f"Reading {config.name}/{experiment.name} from {path}")
        modalities[experiment.name] = sc.read_h5ad(path)

    metadata = None
    if config.cell_metadata_file:
        url, path = _fetch_file(config, config.cell_metadata_file, cache, base_url, checksums)
        urls.append(url)
        metadata = pd.read_parquet(path)

    provenance = {
        "dataset": config.name,
        "version": config.version,
        "experiments": [e.name for e in selected],
        "urls": urls,
    }

    if len(modalities) == 1:
        adata = next(iter(modalities.values()))
        if metadata is not None:
            adata.obs = _join_cell_metadata(adata.obs, metadata)
        adata.uns["scmultiome"] = provenance
        return adata

    if not config.paired:
        _check_unpaired(config, modalities)
    mdata = MuData(modalities)
    if metadata is not None:
        joined = _join_cell_metadata(mdata.obs, metadata)
        for col in joined.columns:
            if col not in mdata.obs.columns:
                mdata.obs[col] = joined[col].values
    mdata.uns["scmultiome"] = provenance
    return mdata
