"""Dataset handling for scmultiome.

This module provides a unified interface for listing, downloading and
assembling the released single-cell datasets.
"""

from .base import DatasetConfig, ExperimentConfig, MODALITIES, STANDARD_OBS_COLUMNS
from .loader import (
    DATASETS,
    register_dataset,
    get_available_datasets,
    get_config,
    list_datasets,
    dataset_files,
    fetch_manifest,
    load_experiment,
    load_cell_metadata,
    load_dataset,
)
from .catalog import (
    pbmc_multiome,
    prostate_enzalutamide,
    bone_marrow_atlas,
    mouse_brain_visium,
)

__all__ = [
    "DatasetConfig",
    "ExperimentConfig",
    "MODALITIES",
    "STANDARD_OBS_COLUMNS",
    "DATASETS",
    "register_dataset",
    "get_available_datasets",
    "get_config",
    "list_datasets",
    "dataset_files",
    "fetch_manifest",
    "load_experiment",
    "load_cell_metadata",
    "load_dataset",
    "pbmc_multiome",
    "prostate_enzalutamide",
    "bone_marrow_atlas",
    "mouse_brain_visium",
]
