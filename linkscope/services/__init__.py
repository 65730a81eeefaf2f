"""Services package - resolution, scoring and analysis."""
