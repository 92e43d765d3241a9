"""Deployment domain: cluster collaborator and status aggregation."""
