"""Temporal workflows, activities and worker for the periodic sweeps."""
