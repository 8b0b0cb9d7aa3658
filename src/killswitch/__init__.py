"""killswitch: VPN-only network lockdown for containerized workloads."""

__version__ = "0.1.0"
