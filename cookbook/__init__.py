"""Chang Cookbook: recipe store and JSON import pipeline."""

__version__ = "0.1.0"
