class InvalidInput(ValueError):
    """Raised by the scoring core when an input cannot produce a meaningful score."""
