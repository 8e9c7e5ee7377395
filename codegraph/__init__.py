"""
Code Graph Engine.

Builds and maintains a persistent semantic graph of a source tree's
symbols and relationships and answers structural and semantic queries
over it: callers, callees, impact radius, search and task context.
"""

__version__ = "1.0.0"
__author__ = "Code Graph Engine"
