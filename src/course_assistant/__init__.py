"""Course assistant: retrieval-augmented study chat over indexed course content."""

__version__ = "0.1.0"
