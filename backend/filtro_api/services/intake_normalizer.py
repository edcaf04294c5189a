"""
Intake normalizer: raw webhook form submission -> canonical intake record.

Pure and total: unknown or malformed values become None (or [] for list fields),
nothing here raises on bad input.
"""

import math
import re
import unicodedata
from types import MappingProxyType
from typing import Any, Mapping, Optional

CENTER_SYNONYMS = MappingProxyType({
    "faizer": "pfizer",
    "pfaizer": "pfizer",
})

SUBTYPE_KEY_PREFIX = "subtipo_"

TEXT_FIELDS = (
    "derivador",
    "enfermedad",
    "tipo_enfermedad",
    "sexo",
    "region",
    "ciudad",
    "metastasis",
    "cirugia",
    "cirugia_fecha",
    "cirugia_descripcion",
    "tratamiento",
    "ecog_dolor",
    "ecog_descanso",
    "ecog_ayuda",
    "contacto_nombre",
    "contacto_email",
    "contacto_telefono",
    "consentimiento",
    "form_id",
    "entry_date",
    "user_ip",
)

_UNICODE_ESCAPE = re.compile(r"\\u([0-9a-fA-F]{4})")


def decode_escaped_text(text: str) -> str:
    """Undo the ``\\uXXXX`` and ``\\/`` escaping some form plugins double-encode."""
    text = _UNICODE_ESCAPE.sub(lambda m: chr(int(m.group(1), 16)), text)
    # Escaped UTF-16 pairs (emoji) decode to two surrogates; join them and replace strays
    text = text.encode("utf-16", "surrogatepass").decode("utf-16", "replace")
    return text.replace("\\/", "/")


def clean_text(value: Any) -> Any:
    if not isinstance(value, str):
        return value
    return unicodedata.normalize("NFC", decode_escaped_text(value).strip())


def to_nullable_string(value: Any) -> Optional[str]:
    # Plain numbers are accepted as text (e.g. ecog_dolor: 2)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        value = str(value)
    cleaned = clean_text(value)
    if not isinstance(cleaned, str) or not cleaned:
        return None
    return cleaned


def to_nullable_number(value: Any):
    if value is None or value == "" or isinstance(value, bool):
        return None
    if isinstance(value, str):
        value = value.strip()
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    if not math.isfinite(number):
        return None
    return int(number) if number.is_integer() else number


def to_user_ref(value: Any) -> Optional[str]:
    """Non-numeric ``user_id`` values are external references; numeric ones are not."""
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return None
    text = to_nullable_string(value)
    if text is None:
        return None
    if to_nullable_number(text) is not None:
        return None
    return text


def split_csv(value: Any) -> list[str]:
    """Comma separated string (or list) -> trimmed, lowercased, non-empty items in order."""
    if isinstance(value, (list, tuple)):
        items = [to_nullable_string(v) for v in value]
    elif isinstance(value, str):
        items = [to_nullable_string(v) for v in value.split(",")]
    else:
        return []
    return [item.lower() for item in items if item]


def normalize_center_list(value: Any) -> list[str]:
    return [CENTER_SYNONYMS.get(center, center) for center in split_csv(value)]


def find_dynamic_subtype(payload: Mapping[str, Any]) -> tuple[Optional[str], Optional[str]]:
    """
    First ``subtipo_<area>`` key (in payload order) with a non-empty string value.
    Returns ``(key, value)`` or ``(None, None)``.
    """
    for key, value in payload.items():
        if not isinstance(key, str) or not key.startswith(SUBTYPE_KEY_PREFIX):
            continue
        if isinstance(value, str) and value.strip():
            return key, to_nullable_string(value)
    return None, None


def normalize_intake_payload(payload: Mapping[str, Any]) -> dict:
    subtype_key, subtype_value = find_dynamic_subtype(payload)

    normalized = {field: to_nullable_string(payload.get(field)) for field in TEXT_FIELDS}
    normalized.update(
        subtipo_enfermedad=subtype_value,
        subtipo_clave=subtype_key,
        tratamiento_tipo=split_csv(payload.get("tratamiento_tipo")),
        entry_id=to_nullable_number(payload.get("entry_id")),
        user_id=to_nullable_number(payload.get("user_id")),
        user_ref=to_user_ref(payload.get("user_id")),
        centro=normalize_center_list(payload.get("centro")),
    )
    return normalized
