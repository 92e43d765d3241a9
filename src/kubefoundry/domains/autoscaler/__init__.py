"""Autoscaler domain: detect how the cluster scales its nodes."""
