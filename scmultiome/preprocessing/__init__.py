"""One-off scripts and helpers used by maintainers to build dataset releases."""
