"""Descriptive and spatial analyses of the tree table.

- abundance: Species counts and abundance summaries
- entropy: Tsallis entropy, Hill numbers, sample coverage
- neighbours: Neighbour pairs shared by the spatial analyses
- concentration: M function of a focal species
- partition: Gamma/alpha/beta diversity partitioning across streets
- accumulation: Local diversity accumulation in a park
"""
