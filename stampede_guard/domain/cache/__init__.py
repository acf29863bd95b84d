"""
Cache Domain Module

Value objects, exceptions and backend interfaces for stampede-safe
memoization.
"""
