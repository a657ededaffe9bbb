"""Release manifests: sizes and SHA-256 checksums of the files in a release.

Usage:
    python -m scmultiome.preprocessing.manifest data/release/pbmc_multiome/v1 --dataset pbmc_multiome --version v1
"""

import argparse
import hashlib
import json
from datetime import datetime, timezone
from pathlib import Path
from typing import Dict, Union

MANIFEST_FILE = "manifest.json"


def file_sha256(path: Path) -> str:
    """SHA-256 hex digest of a file."""
    digest = hashlib.sha256()
    with open(path, "rb") as f:
        for chunk in iter(lambda: f.read(1024 * 1024), b""):
            digest.update(chunk)
    return digest.hexdigest()


def write_manifest(output_dir: Path, dataset: str, version: str) -> Path:
    """Write manifest.json listing every file in ``output_dir``.

    Args:
        output_dir: Release directory
        dataset: Dataset name
        version: Release version

    Returns:
        Path to the manifest
    """
    output_dir = Path(output_dir)
    files = []
    for path in sorted(output_dir.iterdir()):
        if not path.is_file() or path.name == MANIFEST_FILE:
            continue
        files.append({
            "file_name": path.name,
            "size": path.stat().st_size,
            "sha256": file_sha256(path),
        })

    manifest = {
        "dataset": dataset,
        "version": version,
        "created": datetime.now(timezone.utc).isoformat(timespec="seconds"),
        "files": files,
    }
    manifest_path = output_dir / MANIFEST_FILE
    with open(manifest_path, "w") as f:
        json.dump(manifest, f, indent=2)
    print(f"Wrote manifest for {len(files)} files to {manifest_path}")
    return manifest_path


def read_manifest(manifest: Union[Path, str, dict]) -> Dict[str, str]:
    """Map file name to SHA-256 from a manifest path or decoded manifest."""
    if not isinstance(manifest, dict):
        with open(manifest) as f:
            manifest = json.load(f)
    return {entry["file_name"]: entry["sha256"] for entry in manifest.get("files", [])}


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Write manifest.json for a release directory")
    parser.add_argument("output_dir", type=Path, help="Release directory")
    parser.add_argument("--dataset", required=True, help="Dataset name")
    parser.add_argument("--version", required=True, help="Release version")
    args = parser.parse_args()

    write_manifest(args.output_dir, args.dataset, args.version)
