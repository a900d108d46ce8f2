"""Turn request bodies into item filters.

Every field of a request body is either a scalar or an ordered array.
Arrays are combined positionally ("zipped"): two fields given as
3-element arrays yield 3 filters, never 9. A scalar, or a one-element
array, is held constant across every filter.
"""

import logging
from typing import Any, Mapping

from .address import ADDRESS_FIELDS, FIELDS, ItemFilter, ItemQuery
from .errors import ValidationError

logger = logging.getLogger(__name__)


def as_sequence(raw: Any) -> list | None:
    """Normalize one request field.

    ``None`` (explicit null) returns ``None`` so the field is left out of
    every filter; arrays are used as-is; anything else becomes a
    one-element list.
    """
    if raw is None:
        return None
    if isinstance(raw, (list, tuple)):
        return list(raw)
    return [raw]


def present_fields(body: Mapping[str, Any]) -> dict[str, list]:
    """Fields that take part in filtering, normalized to sequences, in field order."""
    present = {}
    for name in FIELDS:
        if name not in body:
            continue
        sequence = as_sequence(body[name])
        if sequence is not None:
            present[name] = sequence
    return present


def multi_valued_fields(body: Mapping[str, Any]) -> list[str]:
    """Names of fields supplied as arrays with more than one element."""
    return [name for name, values in present_fields(body).items() if len(values) > 1]


def broadcast_length(sequences: Mapping[str, list]) -> int:
    """Common length of the multi-valued fields.

    Raises:
        ValidationError: If two multi-valued fields differ in length.
    """
    lengths = [len(values) for values in sequences.values() if len(values) > 1]
    length = max(lengths, default=1)
    if any(n != length for n in lengths):
        raise ValidationError(
            f"Inconsistent array lengths. All array fields must be length 1 or length {length}."
        )
    return length


def expand_filters(body: Mapping[str, Any]) -> list[ItemFilter]:
    """Zip a request body into an ordered list of item filters.

    Absent and explicitly-null fields are left out of every filter. A field
    given as an empty array means there are no combinations at all, so the
    result is empty, as it is for a body with no recognized fields.

    Raises:
        ValidationError: On mismatched array lengths.
    """
    sequences = present_fields(body)
    if not sequences:
        return []
    if any(len(values) == 0 for values in sequences.values()):
        logger.debug("Empty array field in request, no combinations to expand")
        return []

    length = broadcast_length(sequences)
    filters = []
    for i in range(length):
        combo = {
            name: values[0] if len(values) == 1 else values[i]
            for name, values in sequences.items()
        }
        filters.append(ItemFilter(**combo))
    return filters


def build_query(body: Mapping[str, Any]) -> ItemQuery:
    """Build one conjunctive query without zipping.

    Single-valued fields match by equality and array fields by set
    membership. Used when at most one field varies, so no positional
    pairing is needed.
    """
    return ItemQuery(**{name: tuple(values) for name, values in present_fields(body).items()})


def missing_address_fields(item_filter: ItemFilter) -> list[str]:
    return [name for name in ADDRESS_FIELDS if getattr(item_filter, name) is None]
