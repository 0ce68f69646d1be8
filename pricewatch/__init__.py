"""
Price watch: tracked-item polling, price alerts and notification dispatch
"""
__version__ = "1.0.0"
