"""
KDPI Decision-Curve Analysis Package

This package evaluates KDPI thresholds for deceased-donor kidney acceptance with
decision-curve analysis. It includes registry ingestion, KDRI scoring, KDPI mapping,
Cox survival modelling and the threshold sweep.
"""

__version__ = "0.1.0"
