"""Ports for collaborators consumed by the lifecycle managers."""
