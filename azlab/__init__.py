"""azlab: operator tooling for Azure certification-practice environments."""

__version__ = "0.1.0"
