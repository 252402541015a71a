"""Gaia - a CLI front-end for local and hosted language models."""

__version__ = "0.1.0"

from gaia.config import Config

__all__ = ["Config", "__version__"]
