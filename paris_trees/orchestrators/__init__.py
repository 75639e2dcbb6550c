"""Document orchestration.

Runs the render in two phases:
1. Preparation → download, parse, harmonise, project, join, cache
   (skipped when the cache exists)
2. Analysis → abundance, concentration, partitioning, accumulation,
   figures and report
"""
