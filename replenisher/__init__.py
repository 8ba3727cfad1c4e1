"""
Replenisher - recurring order replenishment service.

A FastAPI application that lets customers schedule recurring purchases,
an APScheduler-driven engine that fires each due occurrence, and a worker
that charges the customer, creates the order and advances durable state.
"""

__version__ = "1.0.0"
