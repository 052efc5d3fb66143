"""
Geospatial operations for catalog search, raster reads and site scoring.

This module contains:
- STAC operations (search, quality ranking, band asset resolution)
- Raster operations (windowed COG band reads)
- Spectral index computation and interpretation
- Suitability scoring and map visualization URLs
"""
