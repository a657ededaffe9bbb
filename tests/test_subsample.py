"""Tests for stratified subsampling (scmultiome/preprocessing/subsample.py)."""

import numpy as np
import pandas as pd
from anndata import AnnData

from scmultiome.preprocessing.subsample import stratified_subsample, subsample_adata


def _cells():
    """1000 cells: two samples, one abundant and one rare cell type."""
    n = 1000
    return pd.DataFrame(
        {
            "sample": ["Sample1", "Sample2"] * (n // 2),
            "cell_type": ["T cell"] * 980 + ["pDC"] * 20,
        },
        index=[f"cell{i}" for i in range(n)],
    )


class TestStratifiedSubsample:
    def test_small_input_returned_as_is(self):
        df = _cells().iloc[:50]
        assert stratified_subsample(df, ["sample"], target_n=100) is df

    def test_target_size(self):
        result = stratified_subsample(_cells(), ["sample", "cell_type"], target_n=100, min_per_group=5)
        assert 95 <= len(result) <= 110

    def test_rare_groups_kept(self):
        result = stratified_subsample(_cells(), ["sample", "cell_type"], target_n=100, min_per_group=5)
        counts = result.groupby(["sample", "cell_type"]).size()
        assert (counts >= 5).all()
        assert len(counts) == 4

    def test_original_order(self):
        df = _cells()
        result = stratified_subsample(df, ["cell_type"], target_n=100)
        positions = df.index.get_indexer(result.index)
        assert (np.diff(positions) > 0).all()

    def test_deterministic(self):
        first = stratified_subsample(_cells(), ["sample"], target_n=100, random_state=1)
        second = stratified_subsample(_cells(), ["sample"], target_n=100, random_state=1)
        assert first.index.equals(second.index)

    def test_missing_columns_fall_back_to_random(self, capsys):
        result = stratified_subsample(_cells(), ["donor"], target_n=100)
        assert len(result) == 100
        assert "Column donor not found" in capsys.readouterr().out

    def test_duplicated_index(self):
        df = _cells()
        df.index = ["dup"] * len(df)
        result = stratified_subsample(df, ["sample"], target_n=100)
        assert len(result) == 100


class TestSubsampleAdata:
    def test_subsets_cells(self):
        obs = _cells()
        adata = AnnData(
            X=np.zeros((len(obs), 3), dtype=np.float32),
            obs=obs,
            var=pd.DataFrame(index=["g1", "g2", "g3"]),
        )

        result = subsample_adata(adata, ["sample", "cell_type"], target_n=200, min_per_group=10)

        assert 190 <= result.n_obs <= 220
        assert result.n_vars == 3
        assert not result.is_view
        assert (result.obs["cell_type"] == "pDC").sum() >= 20
