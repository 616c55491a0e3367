"""
Pipelines package for the KDPI decision-curve analysis

This package contains ZenML pipelines for the KDPI decision-curve analysis.
"""

# Import pipelines for easier access
from pipelines.kdpi_dca_pipeline import kdpi_dca_pipeline

__all__ = [
    'kdpi_dca_pipeline'
]
