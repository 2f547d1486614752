"""Risk scoring, anomaly detection and adaptive asset search for Brazilian investments."""

__version__ = "1.0.0"
