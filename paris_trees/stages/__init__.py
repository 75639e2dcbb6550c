"""Preparation stages.

Each stage performs a single step of the data preparation:
- download: Fetch the open-data GeoJSON exports (cached on disk)
- parse_geojson: Read point and polygon features with fiona
- harmonize: Map source fields to the tree table schema
- prepare_window: Project coordinates and build the city window
- spatial_join: Assign trees to districts, drop trees outside the city
- cache: Persist the tree table and the window
"""
