"""GPU capacity domain: cluster inspection and deployment planning."""
