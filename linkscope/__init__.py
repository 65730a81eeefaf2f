"""linkscope - URL redirect chain resolver and heuristic risk scorer."""

__version__ = "1.0.0"
