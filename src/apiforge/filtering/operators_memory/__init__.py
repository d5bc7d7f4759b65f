from .null import IsNotNullOperator, IsNullOperator
from .set import BetweenOperator, InOperator, NotBetweenOperator, NotInOperator
from .standard import (
    EqualOperator,
    GreaterEqualOperator,
    GreaterThanOperator,
    LessEqualOperator,
    LessThanOperator,
    NotEqualOperator,
)
from .string import EndsWithOperator, LikeOperator, NotLikeOperator, StartsWithOperator

ALL_OPERATORS = (
    EqualOperator,
    NotEqualOperator,
    GreaterThanOperator,
    GreaterEqualOperator,
    LessThanOperator,
    LessEqualOperator,
    LikeOperator,
    NotLikeOperator,
    StartsWithOperator,
    EndsWithOperator,
    InOperator,
    NotInOperator,
    BetweenOperator,
    NotBetweenOperator,
    IsNullOperator,
    IsNotNullOperator,
)

__all__ = [
    "ALL_OPERATORS",
    "BetweenOperator",
    "EndsWithOperator",
    "EqualOperator",
    "GreaterEqualOperator",
    "GreaterThanOperator",
    "InOperator",
    "IsNotNullOperator",
    "IsNullOperator",
    "LessEqualOperator",
    "LessThanOperator",
    "LikeOperator",
    "NotBetweenOperator",
    "NotEqualOperator",
    "NotInOperator",
    "NotLikeOperator",
    "StartsWithOperator",
]
