"""
Mainstream
==========

Social and collaboration backend for design teams.
"""

__version__ = "0.1.0"
