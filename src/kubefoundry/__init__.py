"""KubeFoundry: LLM deployment providers and GPU capacity planning for Kubernetes."""

__version__ = "0.1.0"
