"""Application layer - dependency wiring."""

from stocklink.application.services import (
    StockLinkServices,
    build_services,
    create_services,
)

__all__ = [
    "StockLinkServices",
    "build_services",
    "create_services",
]
