"""Link scoring, outlier detection, metrics queries and proxy redirect rules for an edge control plane."""

__version__ = "0.1.0"