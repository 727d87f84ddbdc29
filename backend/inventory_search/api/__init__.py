"""Inventory search REST API package.

Sub-modules expose FastAPI routers:
- search: item search, suggestions, capabilities, analytics and indexing
"""
