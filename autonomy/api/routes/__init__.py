"""
API Routes Package
"""

from autonomy.api.routes import approvals, goals, health, tasks

__all__ = ["approvals", "goals", "health", "tasks"]
