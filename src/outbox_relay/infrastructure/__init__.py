"""Database access, locking repositories, partitioning and metrics."""
