"""Storage and text-processing services."""
