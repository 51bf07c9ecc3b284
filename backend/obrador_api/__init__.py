"""
FastAPI backend for Obrador.

Provides REST API endpoints for:
- Managing ingredients, their aliases and stock
- Managing recipes normalized to a 1000 g yield, with linked sub-recipes
- Default preparation steps per ice-cream category
"""
