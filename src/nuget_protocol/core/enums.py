from enum import Enum


class FilterStrategy(str, Enum):
    SIMPLE = "simple"
    CUSTOM = "custom"
