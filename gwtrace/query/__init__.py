# Query Layer
# Semantic trace filters -> backend search criteria
#
# Request parameter parsing lives in gwtrace.query.params; it depends on the
# trace models and is not re-exported here.

from gwtrace.query.filters import (
    BoolFilter,
    RangeFilter,
    TermFilter,
    TermsFilter,
    to_query_dsl,
)
from gwtrace.query.translator import translate

__all__ = [
    "BoolFilter",
    "RangeFilter",
    "TermFilter",
    "TermsFilter",
    "to_query_dsl",
    "translate",
]
