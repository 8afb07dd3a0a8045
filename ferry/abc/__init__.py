"""
Interface definitions for ferry.

(ABC = Abstract Base Classes)
"""


from . import configurations, sessions
