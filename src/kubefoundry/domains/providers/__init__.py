"""Inference provider domain.

Dynamo, KubeRay and KAITO providers behind a common contract, and the
registry that selects between them by id.
"""
