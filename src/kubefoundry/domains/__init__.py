"""Domain modules for KubeFoundry."""
