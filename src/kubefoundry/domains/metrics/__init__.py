"""Metrics domain: scrape and filter deployment Prometheus metrics."""
