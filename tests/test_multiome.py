"""Tests for multiome release building (scmultiome/preprocessing/multiome.py)."""

import json

import numpy as np
import pandas as pd
import pytest
import scanpy as sc
from anndata import AnnData
from scipy import sparse

from scmultiome.preprocessing.multiome import (
    assemble_multiome,
    assemble_unpaired,
    default_stratify_cols,
    read_table,
    split_modalities,
    write_release,
)

BARCODES = [f"AAACAGCCAAAC{i:04d}-1" for i in range(8)]
SYMBOLS = ["CD3E", "MS4A1", "LYZ"]
GENE_IDS = ["ENSG00000198851", "ENSG00000156738", "ENSG00000090382"]
PEAKS = ["chr1:9790-10675", "chr1:180695-181590"]


def _combined():
    """Combined 10x matrix as read by scanpy.read_10x_h5(..., gex_only=False)."""
    n_vars = len(SYMBOLS) + len(PEAKS)
    X = np.arange(len(BARCODES) * n_vars, dtype=np.float32).reshape(len(BARCODES), n_vars)
    var = pd.DataFrame(
        {
            "gene_ids": GENE_IDS + PEAKS,
            "feature_types": ["Gene Expression"] * len(SYMBOLS) + ["Peaks"] * len(PEAKS),
            "genome": "GRCh38",
        },
        index=SYMBOLS + PEAKS,
    )
    return AnnData(X=sparse.csr_matrix(X), obs=pd.DataFrame(index=BARCODES), var=var)


def _author_metadata():
    """Authors' table: 6 of the 8 barcodes passed QC, plus one not in the matrix."""
    barcodes = BARCODES[:6] + ["TTTTTTTTTTTTTTTT-1"]
    return pd.DataFrame(
        {
            "orig.ident": ["LNCaP_48h", "LNCaP_0h"] * 3 + ["LNCaP_0h"],
            "nCount_RNA": [1000, 1200, 900, 1100, 950, 1300, 10],
            "TSSEnrichment": [5.1, 6.2, 4.8, 5.5, 6.0, 5.9, 1.0],
            "seurat_clusters": [0, 1, 0, 1, 0, 1, 2],
        },
        index=barcodes,
    )


def _umap():
    return pd.DataFrame(
        {"UMAP_1": np.arange(8, dtype=float), "UMAP_2": -np.arange(8, dtype=float)},
        index=BARCODES,
    )


# ---------------------------------------------------------------------------
# Tests: reading inputs
# ---------------------------------------------------------------------------


class TestInputs:
    def test_split_modalities(self):
        modalities = split_modalities(_combined())
        assert list(modalities["rna"].var_names) == SYMBOLS
        assert list(modalities["atac"].var_names) == PEAKS

    def test_split_needs_feature_types(self):
        adata = _combined()
        adata.var = adata.var.drop(columns=["feature_types"])
        with pytest.raises(ValueError, match="gex_only=False"):
            split_modalities(adata)

    def test_split_needs_peaks(self):
        adata = _combined()[:, :3].copy()
        with pytest.raises(ValueError, match="Peaks"):
            split_modalities(adata)

    def test_read_table_first_column(self, tmp_path):
        path = tmp_path / "meta.csv"
        path.write_text(",nCount_RNA\nAAAC-1,10\nAAAG-1,20\n")
        table = read_table(path)
        assert list(table.index) == ["AAAC-1", "AAAG-1"]
        assert table.index.name is None

    def test_read_table_tsv_with_barcode_column(self, tmp_path):
        path = tmp_path / "umap.tsv"
        path.write_text("x\ty\tcell\n1.0\t2.0\tAAAC-1\n")
        table = read_table(path, barcode_col="cell")
        assert list(table.index) == ["AAAC-1"]
        assert list(table.columns) == ["x", "y"]


# ---------------------------------------------------------------------------
# Tests: assembly
# ---------------------------------------------------------------------------


class TestAssembleMultiome:
    def test_full_pipeline(self):
        modalities, metadata = assemble_multiome(
            _combined(),
            _author_metadata(),
            coords=_umap(),
            sample_col="orig.ident",
            rename={"orig.ident": "sample"},
            drop=["seurat_clusters"],
            sample_order=["LNCaP_0h", "LNCaP_48h"],
        )

        assert list(metadata.columns) == ["sample", "n_count_rna", "tss_enrichment", "sample_original"]
        assert list(metadata.index) == BARCODES[:6]
        assert metadata["sample"].tolist() == ["Sample2", "Sample1"] * 3

        rna, atac = modalities["rna"], modalities["atac"]
        assert list(rna.obs_names) == BARCODES[:6]
        assert list(atac.obs_names) == BARCODES[:6]
        assert list(rna.var_names) == GENE_IDS
        assert rna.var["gene_symbol"].tolist() == SYMBOLS
        assert "gene_ids" not in rna.var.columns
        assert "feature_types" not in atac.var.columns
        np.testing.assert_array_equal(rna.obsm["X_umap"][:, 0], np.arange(6, dtype=float))
        np.testing.assert_array_equal(atac.obsm["X_umap"], rna.obsm["X_umap"])

    def test_without_coords(self):
        modalities, _ = assemble_multiome(_combined(), _author_metadata(), sample_col="orig.ident")
        assert "X_umap" not in modalities["rna"].obsm

    def test_snake_cased_sample_column(self):
        _, metadata = assemble_multiome(_combined(), _author_metadata(), sample_col="orig.ident")
        assert metadata["orig_ident"].tolist()[:2] == ["Sample1", "Sample2"]

    def test_gene_mapping(self):
        mapping = pd.DataFrame({"gene_symbol": ["CD3E", "LYZ"], "gene_id": ["ENSG00000198851", "ENSG00000090382"]})
        modalities, _ = assemble_multiome(
            _combined(),
            _author_metadata(),
            sample_col="orig.ident",
            gene_mapping=mapping,
        )
        assert list(modalities["rna"].var_names) == ["ENSG00000198851", "MS4A1", "ENSG00000090382"]

    def test_no_shared_barcodes(self):
        metadata = _author_metadata()
        metadata.index = [f"other-{i}" for i in range(len(metadata))]
        with pytest.raises(ValueError, match="No cell barcodes shared"):
            assemble_multiome(_combined(), metadata, sample_col="orig.ident")

    def test_subsample(self):
        # Unknown stratification column: plain random draw
        modalities, metadata = assemble_multiome(
            _combined(),
            _author_metadata(),
            sample_col="orig.ident",
            subsample=4,
            stratify_cols=["donor"],
        )
        assert len(metadata) == 4
        assert list(modalities["rna"].obs_names) == list(metadata.index)
        assert list(modalities["atac"].obs_names) == list(metadata.index)


class TestAssembleUnpaired:
    def _inputs(self):
        rna = _combined()[:, :3].copy()
        atac = _combined()[:5, 3:].copy()
        metadata = {
            "rna": pd.DataFrame({"Sample": ["BM1"] * 8, "CellType": ["HSC"] * 8}, index=BARCODES),
            "atac": pd.DataFrame({"Sample": ["BM2"] * 4, "CellType": ["CLP"] * 4}, index=BARCODES[:4]),
        }
        return {"rna": rna, "atac": atac}, metadata

    def test_barcodes_prefixed(self):
        modalities, metadata = self._inputs()

        out, combined = assemble_unpaired(modalities, metadata, sample_col="Sample")

        assert list(out["rna"].obs_names) == [f"rna_{bc}" for bc in BARCODES]
        # Fifth ATAC cell has no metadata
        assert list(out["atac"].obs_names) == [f"atac_{bc}" for bc in BARCODES[:4]]
        assert out["rna"].obs_names.intersection(out["atac"].obs_names).empty
        assert len(combined) == 12
        assert combined.loc[f"atac_{BARCODES[0]}", "cell_type"] == "CLP"
        assert combined.loc[f"rna_{BARCODES[0]}", "assay"] == "rna"
        assert combined["sample"].cat.categories.tolist() == ["Sample1", "Sample2"]

    def test_rna_indexed_by_ensembl(self):
        modalities, metadata = self._inputs()
        out, _ = assemble_unpaired(modalities, metadata, sample_col="Sample")
        assert list(out["rna"].var_names) == GENE_IDS
        assert "feature_types" not in out["atac"].var.columns

    def test_no_shared_barcodes(self):
        modalities, metadata = self._inputs()
        metadata["atac"].index = [f"other-{i}" for i in range(4)]
        with pytest.raises(ValueError, match="atac matrix"):
            assemble_unpaired(modalities, metadata, sample_col="Sample")


class TestDefaultStratifyCols:
    def test_configured_columns(self):
        assert default_stratify_cols("pbmc_multiome", "orig.ident") == ["orig_ident", "cell_type"]
        assert default_stratify_cols("prostate_enzalutamide") == ["sample", "treatment"]

    def test_unregistered_dataset(self):
        assert default_stratify_cols("new_release", "Sample") == ["sample"]


# ---------------------------------------------------------------------------
# Tests: writing
# ---------------------------------------------------------------------------


class TestWriteRelease:
    def test_files(self, tmp_path):
        modalities, metadata = assemble_multiome(
            _combined(), _author_metadata(), coords=_umap(), sample_col="orig.ident"
        )
        modalities["rna"].X = modalities["rna"].X.toarray()

        manifest_path = write_release(modalities, metadata, tmp_path, "prostate_enzalutamide", "v1")

        names = sorted(p.name for p in tmp_path.iterdir())
        assert names == ["atac.h5ad", "cell_metadata.parquet", "manifest.json", "rna.h5ad"]

        manifest = json.loads(manifest_path.read_text())
        assert manifest["dataset"] == "prostate_enzalutamide"
        assert len(manifest["files"]) == 3

        rna = sc.read_h5ad(tmp_path / "rna.h5ad")
        assert sparse.issparse(rna.X)
        assert list(rna.var_names) == GENE_IDS
        assert "X_umap" in rna.obsm

        saved = pd.read_parquet(tmp_path / "cell_metadata.parquet")
        assert list(saved.index) == list(metadata.index)
        assert saved["orig_ident"].cat.categories.tolist() == ["Sample1", "Sample2"]
