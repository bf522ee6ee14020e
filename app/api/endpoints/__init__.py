# File: app/api/endpoints/__init__.py
"""
API endpoints package for LodgePay.
"""

from app.api.endpoints import payment_rules, payment_schedules, refunds
