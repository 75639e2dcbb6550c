"""Paris street trees: a reproducible spatial-diversity appendix.

Downloads the Paris open-data tree inventory and district boundaries,
prepares a typed tree table and a projected city window, and renders
species abundance, concentration, diversity partitioning and spatial
diversity accumulation results.
"""

__version__ = "0.1.0"
