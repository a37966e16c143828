"""Reusable patterns behind the rental engine.

Each module is a self-contained building block: the rules engine, the
rental state machine, the repository base and the domain configuration.
"""
