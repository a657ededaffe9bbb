"""Pre-processed single-cell RNA, ATAC, multiome and spatial datasets.

Accessor functions download released files once into a local cache and
assemble them into AnnData / MuData objects::

    import scmultiome
    scmultiome.list_datasets()
    mdata = scmultiome.pbmc_multiome()
    rna = scmultiome.pbmc_multiome(experiments="rna")
"""

from .cache import DataCache
from .settings import Settings, get_settings, reset_settings
from .datasets import (
    get_available_datasets,
    get_config,
    list_datasets,
    dataset_files,
    load_dataset,
    load_experiment,
    pbmc_multiome,
    prostate_enzalutamide,
    bone_marrow_atlas,
    mouse_brain_visium,
)

__version__ = "0.1.0"
