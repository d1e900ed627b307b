"""
relmigrate: migrate sets of related records between a CSV folder and a
record service, keeping lookup and master-detail links intact.
"""

__version__ = "0.1.0"
