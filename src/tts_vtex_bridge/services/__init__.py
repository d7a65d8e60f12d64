"""Order pipeline services."""
