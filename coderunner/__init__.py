"""Run untrusted code in throwaway containers and stream its output."""

__version__ = "1.0.0"
