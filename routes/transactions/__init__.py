# routes/transactions/__init__.py
"""
Transaction Submission Routes Package

This package splits the transaction routes into logical modules:
- submit.py: Submission endpoint that runs the delivery orchestrator
- render.py: Document rendering endpoint and template health check
"""

from flask import Blueprint

# Create the blueprint - all sub-modules will register routes on this
transactions_bp = Blueprint('transactions', __name__, url_prefix='/transactions')

# Import all route modules AFTER blueprint creation
# Each module imports transactions_bp and registers routes on it
from . import submit
from . import render
