"""Campus recreation engagement vs. student-success outcomes (APR, four-year graduation)."""

__version__ = "0.1.0"
