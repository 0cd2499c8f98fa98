"""Status values stored in the catalog tables."""

from enum import Enum


class EntityStatus(str, Enum):
    ACTIVE = "ACTIVE"
    INACTIVE = "INACTIVE"
    ARCHIVED = "ARCHIVED"


class ProductStatus(str, Enum):
    QUEUE = "QUEUE"
    LIVE = "LIVE"
    ARCHIVED = "ARCHIVED"
