"""
Extraction: turns a processed sample table into delivery CSV files.

    ExtractionEngine      orchestrates VTYPE / $N / householding / split / batches
    ExtractionWorkspace   per-identity output directories and downloads
"""

from app.extraction.engine import ExtractionEngine, ExtractionRequest
from app.extraction.workspace import ExtractionWorkspace

__all__ = ["ExtractionEngine", "ExtractionRequest", "ExtractionWorkspace"]
