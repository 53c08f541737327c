"""Agency Hub: data sync layer for the agency CRM."""

from . import entities  # registers every entity codec

__version__ = "2.3.0"
