"""
Perceptual-hash based similar image finder
"""

__version__ = "0.3.0"
