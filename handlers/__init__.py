"""
Handlers that execute assembled queries against the database
"""

from .query_handlers import fetch_paginated

__all__ = ['fetch_paginated']
