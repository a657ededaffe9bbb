"""Released datasets and their accessor functions.

Each dataset is described by a config factory and exposed to users through
an accessor that downloads (or reuses cached) files and assembles them into
an AnnData or MuData object.

Paired releases are built with preprocessing.multiome.build_multiome. The
unpaired bone_marrow_atlas is built with preprocessing.multiome.assemble_unpaired,
which prefixes each barcode with its experiment name so RNA and ATAC cells
never collide.
"""

from .base import DatasetConfig, ExperimentConfig
from .loader import load_dataset, register_dataset

HUMAN = "Homo sapiens"
MOUSE = "Mus musculus"

RNA_GENE_EXPRESSION = ExperimentConfig(
    name="rna",
    modality="rna",
    file_name="rna.h5ad",
    description="Raw UMI counts per gene; var_names are Ensembl gene IDs",
)

ATAC_PEAKS = ExperimentConfig(
    name="atac",
    modality="atac",
    file_name="atac.h5ad",
    description="Fragment counts per called peak (chrom:start-end)",
)


def get_pbmc_multiome_config() -> DatasetConfig:
    """Get configuration for the 10x PBMC multiome dataset."""
    return DatasetConfig(
        name="pbmc_multiome",
        title="PBMC 10k single-cell multiome (RNA + ATAC)",
        species=HUMAN,
        genome="GRCh38",
        version="v1",
        experiments=[RNA_GENE_EXPRESSION, ATAC_PEAKS],
        description=(
            "Peripheral blood mononuclear cells from a healthy donor profiled "
            "with joint gene expression and chromatin accessibility."
        ),
        source="10x Genomics public datasets (Chromium Single Cell Multiome ATAC + Gene Expression)",
        paired=True,
        extra={"stratify_columns": ["cell_type"]},
    )


def get_prostate_enzalutamide_config() -> DatasetConfig:
    """Get configuration for the LNCaP enzalutamide time-course multiome dataset."""
    return DatasetConfig(
        name="prostate_enzalutamide",
        title="LNCaP prostate cancer cells treated with enzalutamide (multiome)",
        species=HUMAN,
        genome="GRCh38",
        version="v1",
        experiments=[RNA_GENE_EXPRESSION, ATAC_PEAKS],
        description=(
            "Androgen-receptor-driven prostate cancer cell line sampled before "
            "and during enzalutamide treatment; samples are renumbered by "
            "treatment time point."
        ),
        source="Public multiome study of LNCaP cells; upstream clustering and UMAP supplied by the authors",
        paired=True,
        extra={"stratify_columns": ["treatment"]},
    )


def get_bone_marrow_atlas_config() -> DatasetConfig:
    """Get configuration for the unpaired bone marrow RNA/ATAC atlas."""
    return DatasetConfig(
        name="bone_marrow_atlas",
        title="Human bone marrow hematopoiesis atlas (unpaired scRNA-seq and scATAC-seq)",
        species=HUMAN,
        genome="GRCh38",
        version="v1",
        experiments=[
            ExperimentConfig(
                name="rna",
                modality="rna",
                file_name="rna.h5ad",
                description="scRNA-seq UMI counts; var_names are Ensembl gene IDs",
            ),
            ExperimentConfig(
                name="atac",
                modality="atac",
                file_name="atac.h5ad",
                description="scATAC-seq fragment counts per peak, measured on different cells",
            ),
        ],
        description=(
            "Bone marrow and peripheral blood cells profiled separately by "
            "scRNA-seq and scATAC-seq; cell barcodes are prefixed by assay."
        ),
        source="Public hematopoiesis atlas; cell type labels from the original publication",
        paired=False,
        extra={"stratify_columns": ["cell_type"]},
    )


def get_mouse_brain_visium_config() -> DatasetConfig:
    """Get configuration for the mouse brain Visium spatial dataset."""
    return DatasetConfig(
        name="mouse_brain_visium",
        title="Mouse brain sagittal sections (10x Visium spatial transcriptomics)",
        species=MOUSE,
        genome="GRCm39",
        version="v1",
        experiments=[
            ExperimentConfig(
                name="spatial",
                modality="spatial",
                file_name="spatial.h5ad",
                description="UMI counts per spot; obsm['spatial'] holds pixel coordinates",
            ),
        ],
        description=(
            "Several Visium sections concatenated into one matrix; spot barcodes "
            "are prefixed by the renumbered section label."
        ),
        source="10x Genomics public Visium datasets",
        paired=True,
    )


register_dataset("pbmc_multiome", get_pbmc_multiome_config)
register_dataset("prostate_enzalutamide", get_prostate_enzalutamide_config)
register_dataset("bone_marrow_atlas", get_bone_marrow_atlas_config)
register_dataset("mouse_brain_visium", get_mouse_brain_visium_config)


def pbmc_multiome(experiments=None, metadata_only=False, cache=None, verify=True):
    """PBMC 10k multiome: paired gene expression and chromatin accessibility.

    Args:
        experiments: Subset of ["rna", "atac"]; all when None
        metadata_only: Return the table of files instead of downloading
        cache: DataCache to use; a default one when None
        verify: Check downloads against the release manifest

    Returns:
        MuData (several experiments), AnnData (one experiment),
        or a DataFrame when metadata_only
    """
    return load_dataset(
        "pbmc_multiome",
        experiments=experiments,
        metadata_only=metadata_only,
        cache=cache,
        verify=verify,
    )


def prostate_enzalutamide(experiments=None, metadata_only=False, cache=None, verify=True):
    """LNCaP enzalutamide time course, paired RNA + ATAC. See pbmc_multiome for arguments."""
    return load_dataset(
        "prostate_enzalutamide",
        experiments=experiments,
        metadata_only=metadata_only,
        cache=cache,
        verify=verify,
    )


def bone_marrow_atlas(experiments=None, metadata_only=False, cache=None, verify=True):
    """Unpaired bone marrow scRNA-seq and scATAC-seq. See pbmc_multiome for arguments."""
    return load_dataset(
        "bone_marrow_atlas",
        experiments=experiments,
        metadata_only=metadata_only,
        cache=cache,
        verify=verify,
    )


def mouse_brain_visium(experiments=None, metadata_only=False, cache=None, verify=True):
    """Mouse brain Visium sections as a single AnnData with spot coordinates."""
    return load_dataset(
        "mouse_brain_visium",
        experiments=experiments,
        metadata_only=metadata_only,
        cache=cache,
        verify=verify,
    )
