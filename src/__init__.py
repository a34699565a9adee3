"""BrainScanner test administration session engine."""
