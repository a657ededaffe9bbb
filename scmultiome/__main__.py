"""Command line interface.

Usage:
    python -m scmultiome list
    python -m scmultiome info pbmc_multiome
    python -m scmultiome fetch pbmc_multiome --experiments rna
    python -m scmultiome cache list
    python -m scmultiome cache clear
"""

import argparse

import pandas as pd

from .cache import DataCache
from .datasets import dataset_files, fetch_manifest, get_config, list_datasets
from .settings import get_settings


def cmd_list(args):
    datasets = list_datasets()
    with pd.option_context("display.max_colwidth", 60, "display.width", 200):
        print(datasets[["name", "species", "modalities", "paired", "title"]].to_string(index=False))


def cmd_info(args):
    config = get_config(args.name)
    print(f"=== {config.name} ({config.version}) ===")
    print(config.title)
    print(f"\nSpecies: {config.species} ({config.genome})")
    print(f"Paired: {config.paired}")
    if config.description:
        print(f"\n{config.description}")
    if config.source:
        print(f"Source: {config.source}")
    print("\nExperiments:")
    for experiment in config.experiments:
        print(f"  {experiment.name} [{experiment.modality}] {experiment.file_name}: {experiment.description}")
    print("\nFiles:")
    files = dataset_files(config.name, cache=DataCache(verbose=False))
    print(files[["experiment", "file_name", "cached"]].to_string(index=False))


def cmd_fetch(args):
    config = get_config(args.name)
    cache = DataCache()
    base_url = get_settings().base_url
    checksums = fetch_manifest(config, cache, base_url)

    files = dataset_files(config.name, experiments=args.experiments, cache=cache)
    for _, row in files.iterrows():
        path = cache.fetch(row["url"], sha256=checksums.get(row["file_name"]), force=args.force)
        print(f"  {row['experiment']}: {path}")


def cmd_cache_list(args):
    cache = DataCache()
    cached = cache.list_cached()
    if cached.empty:
        print(f"Cache at {cache.cache_dir} is empty")
        return
    print(cached[["url", "size", "fetched_at"]].to_string(index=False))
    print(f"\nTotal: {len(cached)} files, {cache.total_size() / 1024 / 1024:.1f} MB")


def cmd_cache_clear(args):
    cache = DataCache()
    removed = cache.clear()
    print(f"Removed {removed} files from {cache.cache_dir}")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scmultiome",
        description="Download and cache pre-processed single-cell datasets.",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    list_parser = subparsers.add_parser("list", help="List available datasets")
    list_parser.set_defaults(func=cmd_list)

    info_parser = subparsers.add_parser("info", help="Describe a dataset and its files")
    info_parser.add_argument("name", help="Dataset name")
    info_parser.set_defaults(func=cmd_info)

    fetch_parser = subparsers.add_parser("fetch", help="Download a dataset into the cache")
    fetch_parser.add_argument("name", help="Dataset name")
    fetch_parser.add_argument(
        "--experiments", "-e",
        nargs="+",
        default=None,
        help="Experiments to download (default: all)",
    )
    fetch_parser.add_argument("--force", action="store_true", help="Download even if cached")
    fetch_parser.set_defaults(func=cmd_fetch)

    cache_parser = subparsers.add_parser("cache", help="Inspect or clear the download cache")
    cache_subparsers = cache_parser.add_subparsers(dest="cache_command", required=True)
    cache_list = cache_subparsers.add_parser("list", help="List cached files")
    cache_list.set_defaults(func=cmd_cache_list)
    cache_clear = cache_subparsers.add_parser("clear", help="Delete all cached files")
    cache_clear.set_defaults(func=cmd_cache_clear)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
