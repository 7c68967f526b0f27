"""
Gateway Waiter: drives the IB Gateway login and configuration dialogs by
watching its windows and clicking through them.
"""

__version__ = "0.1.0"
