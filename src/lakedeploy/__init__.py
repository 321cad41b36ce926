"""lakedeploy - dependency-ordered analytics environment deployment."""

__version__ = "0.1.0"
