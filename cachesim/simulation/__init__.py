"""Simulation package.

Exposes the Simulation runner and the built-in scenario generator at
`cachesim.simulation`.
"""
from .simulation import SCENARIOS, Simulation, generate_sequence

__all__ = ["SCENARIOS", "Simulation", "generate_sequence"]
