"""Order verification and courier dispatch pipeline."""
