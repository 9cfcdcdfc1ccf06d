class StoreError(RuntimeError):
    """Raised when the resident/log backend rejects or fails an operation."""
