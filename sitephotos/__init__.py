"""Background site photo upload pipeline."""
