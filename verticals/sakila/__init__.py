"""Sakila vertical — the DVD rental lifecycle engine.

Brings the shared patterns together for one domain:
- SQLAlchemy models for films, inventory copies, customers and rentals
- Async repositories with status-guarded ledger writes
- Availability checker and pricing resolver
- Rental coordinator driving the lifecycle state machine
- Ledger repair passes run at startup and before reads
- FastAPI routers for the customer and staff surfaces
"""
