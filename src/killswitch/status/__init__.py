"""Status monitoring: read-only probes of the enforced network state."""
