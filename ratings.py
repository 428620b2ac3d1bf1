from typing import Any, Dict, Optional, Tuple

from errors import ValidationError

# 低い順 -> 高い順
RATING_LABELS: Tuple[str, ...] = (
    "undecided",
    "meh",
    "okay",
    "satisfied",
    "would repeat",
)
DEFAULT_RATING = RATING_LABELS[0]

_VALUE_TO_LABEL: Dict[int, str] = {i: label for i, label in enumerate(RATING_LABELS, 1)}
_LABEL_TO_VALUE: Dict[str, int] = {label: i for i, label in _VALUE_TO_LABEL.items()}


def value_to_label(value: Any) -> str:
    if isinstance(value, bool) or not isinstance(value, int):
        return DEFAULT_RATING
    return _VALUE_TO_LABEL.get(value, DEFAULT_RATING)


def label_to_value(label: Any) -> int:
    if not isinstance(label, str):
        return 1
    return _LABEL_TO_VALUE.get(label, 1)


def _lookup(raw: Any) -> Optional[str]:
    if isinstance(raw, bool):
        return None
    if isinstance(raw, int):
        return _VALUE_TO_LABEL.get(raw)
    if isinstance(raw, float) and raw.is_integer():
        return _VALUE_TO_LABEL.get(int(raw))
    if isinstance(raw, str):
        s = raw.strip()
        if s in _LABEL_TO_VALUE:
            return s
        if s.lower() in _LABEL_TO_VALUE:
            return s.lower()
        if s.isdigit():
            return _VALUE_TO_LABEL.get(int(s))
    return None


def resolve_rating(raw: Any, strict: bool = False) -> str:
    """Map a label, a 1-5 integer or a numeric string onto a rating label.

    ``None`` always resolves to the lowest label. Anything else that does not
    map resolves to the lowest label too, unless ``strict`` is set, in which
    case it is rejected.
    """
    if raw is None or raw == "":
        return DEFAULT_RATING
    label = _lookup(raw)
    if label is not None:
        return label
    if strict:
        raise ValidationError(
            f"Invalid rating. Must be one of: {', '.join(RATING_LABELS)} (or 1-5)"
        )
    return DEFAULT_RATING
