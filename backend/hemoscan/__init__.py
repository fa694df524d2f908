"""HemoScan: CBC anemia screening with AI-augmented guidance."""

__version__ = "0.1.0"
