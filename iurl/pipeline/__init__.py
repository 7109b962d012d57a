"""Scan pipeline."""

from .service import ScanService

__all__ = ["ScanService"]
