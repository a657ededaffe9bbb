"""Gene symbol to Ensembl ID mapping tables.

Two sources: the feature table shipped with 10x matrices (carries both the
Ensembl ID and the symbol), and Ensembl BioMart for releases that only come
with symbols.
"""

from typing import Optional
from urllib.parse import quote

import pandas as pd
from anndata import AnnData

from ..cache import DataCache

BIOMART_URL = "https://www.ensembl.org/biomart/martservice"

BIOMART_DATASETS = {
    "human": "hsapiens_gene_ensembl",
    "mouse": "mmusculus_gene_ensembl",
}

BIOMART_QUERY = (
    '<?xml version="1.0" encoding="UTF-8"?>'
    '<!DOCTYPE Query>'
    '<Query virtualSchemaName="default" formatter="TSV" header="1" uniqueRows="1" datasetConfigVersion="0.6">'
    '<Dataset name="{dataset}" interface="default">'
    '<Attribute name="ensembl_gene_id"/>'
    '<Attribute name="external_gene_name"/>'
    '</Dataset>'
    '</Query>'
)


def use_feature_ids(adata: AnnData, id_col: str = "gene_ids") -> AnnData:
    """Index genes by the Ensembl IDs of a 10x feature table.

    Args:
        adata: Matrix read with scanpy.read_10x_h5 (var_names = symbols)
        id_col: var column holding the Ensembl IDs

    Returns:
        Copy indexed by Ensembl ID, with the symbol in var['gene_symbol']
    """
    if id_col not in adata.var.columns:
        raise ValueError(f"Feature table has no {id_col!r} column. Available: {list(adata.var.columns)}")

    ids = pd.Index(adata.var[id_col].astype(str).to_numpy())
    if ids.duplicated().any():
        raise ValueError(f"Duplicated IDs in var[{id_col!r}]: {ids[ids.duplicated()].unique().tolist()[:5]}")

    out = adata.copy()
    out.var["gene_symbol"] = adata.var_names.astype(str).to_numpy()
    out.var_names = ids
    out.var = out.var.drop(columns=[id_col])
    print(f"Indexed {out.n_vars} genes by Ensembl ID from the feature table")
    return out


def biomart_query_url(species: str) -> str:
    """BioMart URL returning Ensembl gene IDs and symbols for a species."""
    if species not in BIOMART_DATASETS:
        raise ValueError(f"Unknown species: {species}. Available: {list(BIOMART_DATASETS.keys())}")
    query = BIOMART_QUERY.format(dataset=BIOMART_DATASETS[species])
    return f"{BIOMART_URL}?query={quote(query)}"


def fetch_ensembl_mapping(species: str = "human", cache: Optional[DataCache] = None) -> pd.DataFrame:
    """Download the gene ID/symbol table for a species from Ensembl BioMart.

    The response is kept in the download cache, so later runs work offline.

    Returns:
        DataFrame with columns gene_id, gene_symbol
    """
    url = biomart_query_url(species)
    if cache is None:
        cache = DataCache()

    print(f"Fetching {species} gene annotation from Ensembl BioMart...")
    path = cache.fetch(url)

    table = pd.read_csv(path, sep="\t", dtype=str)
    table.columns = ["gene_id", "gene_symbol"]
    table = table.dropna(subset=["gene_symbol"])
    table = table[table["gene_symbol"].str.len() > 0].reset_index(drop=True)
    print(f"  {len(table)} genes with a symbol")
    return table
