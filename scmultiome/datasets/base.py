"""Base classes and types for dataset handling."""

from dataclasses import dataclass, field
from typing import List, Optional

# Assay families an experiment can hold
MODALITIES = ("rna", "atac", "spatial", "protein")


@dataclass
class ExperimentConfig:
    """One modality of a dataset, stored as a single h5ad file.

    Attributes:
        name: Experiment key (e.g., "rna", "atac")
        modality: Assay family, one of MODALITIES
        file_name: Name of the released h5ad file (e.g., "rna.h5ad")
        description: What the matrix holds
    """
    name: str
    modality: str
    file_name: str
    description: str = ""

    def __post_init__(self):
        if self.modality not in MODALITIES:
            raise ValueError(
                f"Unknown modality {self.modality!r} for experiment {self.name!r}. "
                f"Expected one of {list(MODALITIES)}"
            )


@dataclass
class DatasetConfig:
    """Configuration for a released single-cell dataset.

    Attributes:
        name: Short identifier (e.g., "pbmc_multiome")
        title: Human-readable title
        species: Species name (e.g., "Homo sapiens", "Mus musculus")
        genome: Reference genome build (e.g., "GRCh38")
        version: Release version; part of the remote path
        experiments: One entry per modality
        description: Free-text summary of the study
        source: Where the raw data and upstream analysis came from
        cell_metadata_file: Optional per-cell table shared by all experiments
        paired: Whether all experiments measure the same cells
    """
    name: str
    title: str
    species: str
    genome: str
    version: str
    experiments: List[ExperimentConfig]
    description: str = ""
    source: str = ""
    cell_metadata_file: Optional[str] = "cell_metadata.parquet"
    paired: bool = True

    # Free-form extras (e.g., "stratify_columns" used when subsampling a release)
    extra: dict = field(default_factory=dict)

    @property
    def modalities(self) -> List[str]:
        """Unique modalities in experiment order."""
        seen = []
        for experiment in self.experiments:
            if experiment.modality not in seen:
                seen.append(experiment.modality)
        return seen

    @property
    def experiment_names(self) -> List[str]:
        return [experiment.name for experiment in self.experiments]

    def get_experiment(self, name: str) -> ExperimentConfig:
        for experiment in self.experiments:
            if experiment.name == name:
                return experiment
        raise ValueError(
            f"Unknown experiment {name!r} for dataset {self.name!r}. "
            f"Available: {self.experiment_names}"
        )

    def remote_prefix(self, base_url: str) -> str:
        """URL of the directory holding this release."""
        return f"{base_url.rstrip('/')}/{self.name}/{self.version}"

    def url_for(self, file_name: str, base_url: str) -> str:
        return f"{self.remote_prefix(base_url)}/{file_name}"

    def manifest_url(self, base_url: str) -> str:
        return self.url_for("manifest.json", base_url)


# Harmonized per-cell column names written by the preprocessing scripts
STANDARD_OBS_COLUMNS = {
    "sample": "Renumbered sample label (Sample1, Sample2, ...)",
    "sample_original": "Sample label as supplied by the data producer",
    "donor_id": "Donor/subject identifier",
    "batch": "Processing batch",
    "cell_type": "Cell type annotation from the upstream analysis",
    "n_counts": "Total UMI counts (RNA)",
    "n_genes": "Number of detected genes (RNA)",
    "n_fragments": "Number of unique fragments (ATAC)",
    "tss_enrichment": "TSS enrichment score (ATAC)",
    "nucleosome_signal": "Nucleosome signal (ATAC)",
    "frip": "Fraction of reads in peaks (ATAC)",
}
