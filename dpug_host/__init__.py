"""
DPug host: supervises the local DPug formatting/conversion server and
exposes formatting and dialect conversion commands on top of it.
"""

__version__ = "0.1.0"
