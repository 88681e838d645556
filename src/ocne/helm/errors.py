# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/ocne/helm/errors.py
class HelmError(RuntimeError):
    """Base class for Helm-related failures."""

class ChartDownloadError(HelmError):
    """Raised when a chart archive cannot be fetched from a catalog."""
