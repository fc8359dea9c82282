"""Commercial real-estate document classification, extraction and training pipeline."""

__version__ = "0.1.0"
