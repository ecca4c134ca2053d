"""Core domain layer - entities, interfaces, and exceptions."""

from stocklink.core import entities, exceptions, interfaces

__all__ = ["entities", "interfaces", "exceptions"]
