"""
Per-layer attribute schema mapping.

Each dataset names its fields differently (``ALLOT_NAME``, ``Allot_Name``,
``allot_name`` ...). Instead of guessing, a layer configuration carries an
explicit table of output property -> candidate attribute names, tried in order.

Functions:
    map_attributes: Apply a field mapping to one feature's attributes
    extract_feature_id: Read a feature id as a string
"""

from typing import Any, Dict, List, Mapping, Optional, Union

FieldMap = Mapping[str, Union[str, List[str]]]


def _is_empty(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and value != value:  # NaN check
        return True
    if isinstance(value, str) and not value.strip():
        return True
    return False


def map_attributes(attributes: Mapping[str, Any], field_map: Optional[FieldMap]) -> Dict[str, Any]:
    """
    Map raw service attributes to output properties.

    For each output property the candidate attribute names are tried in order;
    the first present, non-empty value wins. Properties with no match are None.

    Parameters:
    -----------
    attributes : Mapping[str, Any]
        Raw feature attributes
    field_map : Optional[FieldMap]
        Output property -> candidate name (or list of names)

    Returns:
    --------
    Dict[str, Any]
        Mapped properties (empty dict when no mapping is configured)

    Example:
        >>> map_attributes({'Allot_Name': 'Red Canyon'}, {'allotName': ['ALLOT_NAME', 'Allot_Name']})
        {'allotName': 'Red Canyon'}
    """
    if not field_map:
        return {}

    mapped = {}
    for prop, candidates in field_map.items():
        if isinstance(candidates, str):
            candidates = [candidates]

        mapped[prop] = None
        for name in candidates:
            value = attributes.get(name)
            if not _is_empty(value):
                mapped[prop] = value
                break

    return mapped


def extract_feature_id(attributes: Mapping[str, Any], id_field: Optional[str]) -> Optional[str]:
    """Return the feature id as a string, or None when the field is absent or empty."""
    if not id_field:
        return None
    value = attributes.get(id_field)
    if _is_empty(value):
        return None
    return str(value)
