"""Tests for release manifests (scmultiome/preprocessing/manifest.py)."""

import hashlib
import json

from scmultiome.preprocessing.manifest import (
    MANIFEST_FILE,
    file_sha256,
    read_manifest,
    write_manifest,
)


def test_file_sha256(tmp_path):
    path = tmp_path / "rna.h5ad"
    path.write_bytes(b"x" * (3 * 1024 * 1024 + 7))
    assert file_sha256(path) == hashlib.sha256(b"x" * (3 * 1024 * 1024 + 7)).hexdigest()


def test_write_manifest(tmp_path):
    (tmp_path / "rna.h5ad").write_bytes(b"rna")
    (tmp_path / "cell_metadata.parquet").write_bytes(b"meta")
    (tmp_path / "raw").mkdir()

    path = write_manifest(tmp_path, "pbmc_multiome", "v1")

    assert path == tmp_path / MANIFEST_FILE
    manifest = json.loads(path.read_text())
    assert manifest["dataset"] == "pbmc_multiome"
    assert manifest["version"] == "v1"
    assert [f["file_name"] for f in manifest["files"]] == ["cell_metadata.parquet", "rna.h5ad"]
    assert manifest["files"][1] == {
        "file_name": "rna.h5ad",
        "size": 3,
        "sha256": hashlib.sha256(b"rna").hexdigest(),
    }


def test_rewrite_skips_previous_manifest(tmp_path):
    (tmp_path / "rna.h5ad").write_bytes(b"rna")
    write_manifest(tmp_path, "pbmc_multiome", "v1")
    path = write_manifest(tmp_path, "pbmc_multiome", "v1")
    assert read_manifest(path) == {"rna.h5ad": hashlib.sha256(b"rna").hexdigest()}


def test_read_manifest_from_dict():
    manifest = {"files": [{"file_name": "atac.h5ad", "size": 1, "sha256": "abc"}]}
    assert read_manifest(manifest) == {"atac.h5ad": "abc"}
    assert read_manifest({}) == {}
