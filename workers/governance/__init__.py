"""
governance — proposal ingestion, proposal monitor and forum search around
the verification pipeline.
"""

__version__ = "0.3.0"
PACKAGE_NAME = "governance"
