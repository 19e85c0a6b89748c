"""Release Pilot: daily release digests for product managers."""

__version__ = "0.1.0"
