"""Statutory PAYE, UIF and SDL payroll engine."""

__version__ = "1.0.0"
