"""Firewall policy compilation, simulation, and enforcement."""
