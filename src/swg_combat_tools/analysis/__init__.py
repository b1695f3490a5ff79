"""Aggregation, encounter segmentation, window re-aggregation and derived insights."""
