"""Console entry point for the portfolio groups terminal client."""
