"""
headerify — turns authoring assets into statically-initialized source tables.

Collada scenes become C headers (or skeleton JSON / pose text), BMFont
descriptors become font headers and localization CSVs become .strings files.
"""

__version__ = "0.3.0"
