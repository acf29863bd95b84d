"""Domain layer for stampede-safe caching."""
