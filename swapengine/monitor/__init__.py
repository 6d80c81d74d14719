"""
Order monitoring: stop-loss / take-profit triggers.
"""
from .price_monitor import OrderMonitor

__all__ = ['OrderMonitor']
