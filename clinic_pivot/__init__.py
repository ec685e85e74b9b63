"""Clinic-Pivot: reshape clinic fact records into one row per patient."""

__version__ = "1.0.0"
