"""Infrastructure layer for Clinic-Pivot: configuration, settings and logging."""
