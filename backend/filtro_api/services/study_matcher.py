"""
Eligibility matcher: normalized intake record x clinical study catalog.

Each study runs through ordered hard gates (recruiting, disease, subtype, center)
which stop at the first failure, then through soft rules (yes/no agreement,
prior treatment types, ECOG bounds) whose failures are all collected. A study is
eligible only when no gate failed and no soft rule complained.

Everything here is pure: the catalog is passed in as a list of plain dicts and
nothing raises on missing or malformed data. Missing data on either side makes
the corresponding check abstain (pass) rather than reject.
"""

import math
import re
import unicodedata
from collections import Counter
from dataclasses import asdict, dataclass
from types import MappingProxyType
from typing import Any, Mapping, Optional, Sequence

RECRUITING = "reclutando"

ECOG_WEIGHTS = MappingProxyType({
    "dolor": 0.25,
    "descanso": 0.30,
    "ayuda": 0.45,
})

ECOG_DOLOR = MappingProxyType({
    "no tengo dolor": 1,
    "dolor leve": 2,
    "dolor moderado": 3,
    "dolor severo": 4,
    "dolor intenso": 4,
})

ECOG_DESCANSO = MappingProxyType({
    "no descanso en cama": 1,
    "solo en la noche": 2,
    "solo en la noche.": 2,
    "algunas horas al dia": 3,
    "varias horas al dia": 3,
    "la mayor parte del dia": 4,
})

ECOG_AYUDA = MappingProxyType({
    "no necesito ayuda": 1,
    "necesito poca ayuda": 2,
    "necesito ayuda": 3,
    "necesito ayuda frecuente": 3,
    "dependo totalmente de otros": 4,
    "necesito ayuda total": 4,
})

GENERIC_DISEASE_TERMS = frozenset({"cancer", "tumor", "neoplasia", "oncologia", "oncologico"})

# Patient-reported treatment type -> study flag that may forbid it
TREATMENT_TYPE_FIELDS = MappingProxyType({
    "quimioterapia": "quimioterapia",
    "radioterapia": "radioterapia",
    "inmunoterapia": "inmunoterapia",
    "terapia hormonal": "terapia_hormonal",
    "terapia dirigida": "terapia_dirigida",
})

STUDY_DISEASE_FIELDS = ("enfermedad", "tipo_enfermedad", "enfermedad_protocolo", "patologia")
STUDY_SUBTYPE_FIELDS = ("subtipo", "subtipo_enfermedad", "subtipo_protocolo")
YES_NO_RULES = ("metastasis", "cirugia", "tratamiento")

YES_VALUES = frozenset({"si", "yes", "true", "1"})
NO_VALUES = frozenset({"no", "false", "0"})

_LEADING_INT = re.compile(r"\s*([+-]?\d+)")


def normalize_text(value: Any) -> str:
    """Accent-free, lowercase, whitespace-collapsed text; '' for None."""
    if value is None:
        return ""
    text = unicodedata.normalize("NFD", str(value))
    text = "".join(ch for ch in text if not unicodedata.combining(ch))
    return " ".join(text.lower().split())


def to_number(value: Any) -> Optional[float]:
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError, OverflowError):
        return None
    return number if math.isfinite(number) else None


def parse_yes_no(value: Any) -> Optional[str]:
    """'si' / 'no' for definite answers, the normalized text otherwise, None when empty."""
    text = normalize_text(value)
    if not text:
        return None
    if text in YES_VALUES:
        return "si"
    if text in NO_VALUES:
        return "no"
    return text


def parse_scale_value(value: Optional[str], table: Mapping[str, int]) -> Optional[int]:
    if not value:
        return None
    leading = _LEADING_INT.match(str(value))
    if leading:
        return int(leading.group(1))
    return table.get(normalize_text(value))


def ecog_from_normalized(normalized: Mapping[str, Any]) -> Optional[float]:
    """Weighted ECOG estimate from the three self-report answers; None unless all three resolve."""
    dolor = parse_scale_value(normalized.get("ecog_dolor"), ECOG_DOLOR)
    descanso = parse_scale_value(normalized.get("ecog_descanso"), ECOG_DESCANSO)
    ayuda = parse_scale_value(normalized.get("ecog_ayuda"), ECOG_AYUDA)
    if dolor is None or descanso is None or ayuda is None:
        return None

    weighted = (
        dolor * ECOG_WEIGHTS["dolor"]
        + descanso * ECOG_WEIGHTS["descanso"]
        + ayuda * ECOG_WEIGHTS["ayuda"]
    )
    return round(weighted - 1, 2)


@dataclass(frozen=True)
class PatientInput:
    """The slice of a normalized intake record the matcher looks at."""
    enfermedad: Optional[str]
    tipo_enfermedad: Optional[str]
    subtipo_enfermedad: Optional[str]
    metastasis: Optional[str]
    cirugia: Optional[str]
    tratamiento: Optional[str]
    tratamiento_tipo: tuple
    centro: tuple
    ecog_score: Optional[float]

    @classmethod
    def from_normalized(cls, normalized: Mapping[str, Any]) -> "PatientInput":
        return cls(
            enfermedad=normalized.get("enfermedad"),
            tipo_enfermedad=normalized.get("tipo_enfermedad"),
            subtipo_enfermedad=normalized.get("subtipo_enfermedad"),
            metastasis=normalized.get("metastasis"),
            cirugia=normalized.get("cirugia"),
            tratamiento=normalized.get("tratamiento"),
            tratamiento_tipo=tuple(normalized.get("tratamiento_tipo") or ()),
            centro=tuple(normalized.get("centro") or ()),
            ecog_score=ecog_from_normalized(normalized),
        )

    def snapshot(self) -> dict:
        data = asdict(self)
        data["tratamiento_tipo"] = list(self.tratamiento_tipo)
        data["centro"] = list(self.centro)
        return data


def _candidates(study: Mapping[str, Any], fields: Sequence[str]) -> list[str]:
    """Distinct normalized non-empty values of ``fields`` (scalars or lists)."""
    found = []
    for name in fields:
        value = study.get(name)
        values = value if isinstance(value, (list, tuple)) else [value]
        for item in values:
            text = normalize_text(item)
            if text and text not in found:
                found.append(text)
    return found


def _overlaps(a: str, b: str) -> bool:
    return a in b or b in a


def is_recruiting(study: Mapping[str, Any]) -> bool:
    return normalize_text(study.get("estado_protocolo")) == RECRUITING


def check_disease(study: Mapping[str, Any], patient: PatientInput) -> dict:
    candidates = _candidates(study, STUDY_DISEASE_FIELDS)
    specific = [c for c in candidates if c not in GENERIC_DISEASE_TERMS]
    disease_type = normalize_text(patient.tipo_enfermedad)
    disease = normalize_text(patient.enfermedad)
    if disease_type in GENERIC_DISEASE_TERMS:
        # "cancer" as a type says nothing specific; treat it as free text
        disease, disease_type = disease or disease_type, ""

    check = {"candidates": candidates, "patient_type": disease_type or None, "patient_disease": disease or None}
    if not disease_type and not disease:
        return {**check, "passed": True, "mode": "no_patient_data"}
    if not candidates:
        return {**check, "passed": True, "mode": "no_study_data"}
    if disease_type:
        return {**check, "passed": disease_type in specific, "mode": "type_exact"}
    if not specific:
        return {**check, "passed": True, "mode": "generic_study"}
    return {**check, "passed": any(_overlaps(c, disease) for c in specific), "mode": "substring"}


def check_subtype(study: Mapping[str, Any], patient: PatientInput) -> dict:
    subtype = normalize_text(patient.subtipo_enfermedad)
    candidates = _candidates(study, STUDY_SUBTYPE_FIELDS)
    check = {"candidates": candidates, "patient_subtype": subtype or None}
    if not subtype:
        return {**check, "passed": True, "mode": "no_patient_data"}
    if not candidates:
        return {**check, "passed": True, "mode": "no_study_data"}
    return {**check, "passed": any(_overlaps(c, subtype) for c in candidates), "mode": "substring"}


def check_center(study: Mapping[str, Any], centers: Sequence[str]) -> dict:
    if not centers:
        return {"passed": True, "mode": "unscoped", "matched": []}
    raw = study.get("centros_protocolo")
    study_centers = {normalize_text(c) for c in raw} if isinstance(raw, (list, tuple)) else set()
    matched = [c for c in centers if normalize_text(c) in study_centers]
    return {"passed": bool(matched), "mode": "scoped", "matched": matched}


def match_yes_no_rule(study_value: Any, patient_value: Optional[str]) -> bool:
    """Only a definite study yes/no is enforced, and only against a definite patient answer."""
    study = parse_yes_no(study_value)
    if study not in ("si", "no"):
        return True
    patient = parse_yes_no(patient_value)
    if patient not in ("si", "no"):
        return True
    return patient == study


def excluded_treatment_types(study: Mapping[str, Any], treatment_types: Sequence[str]) -> list[str]:
    excluded = []
    for treatment in treatment_types:
        flag = TREATMENT_TYPE_FIELDS.get(normalize_text(treatment))
        if flag and parse_yes_no(study.get(flag)) == "no":
            excluded.append(treatment)
    return excluded


def check_ecog(study: Mapping[str, Any], score: Optional[float]) -> list[str]:
    if score is None:
        return []
    reasons = []
    ecog_min = to_number(study.get("ecog_min"))
    ecog_max = to_number(study.get("ecog_max"))
    if ecog_min is not None and score < ecog_min:
        reasons.append("ecog_below_min")
    if ecog_max is not None and score > ecog_max:
        reasons.append("ecog_above_max")
    return reasons


def evaluate_study(study: Mapping[str, Any], patient: PatientInput, centers: Sequence[str]) -> dict:
    evaluation = {
        "id": str(study.get("id") or ""),
        "protocolo": str(study.get("protocolo") or ""),
        "eligible": False,
        "failed_gate": None,
        "reasons": [],
        "checks": {},
    }
    checks = evaluation["checks"]

    def fail(gate: str, reason: str) -> dict:
        evaluation["failed_gate"] = gate
        evaluation["reasons"] = [reason]
        return evaluation

    checks["recruiting"] = {"passed": is_recruiting(study), "estado": study.get("estado_protocolo")}
    if not checks["recruiting"]["passed"]:
        return fail("recruiting", "not_recruiting")

    checks["disease"] = check_disease(study, patient)
    if not checks["disease"]["passed"]:
        reason = "disease_type_mismatch" if checks["disease"]["mode"] == "type_exact" else "disease_mismatch"
        return fail("disease", reason)

    checks["subtype"] = check_subtype(study, patient)
    if not checks["subtype"]["passed"]:
        return fail("subtype", "subtype_mismatch")

    checks["center"] = check_center(study, centers)
    if not checks["center"]["passed"]:
        return fail("center", "center_mismatch")

    reasons = []
    for rule in YES_NO_RULES:
        passed = match_yes_no_rule(study.get(rule), getattr(patient, rule))
        checks[rule] = {"passed": passed, "study": study.get(rule), "patient": getattr(patient, rule)}
        if not passed:
            reasons.append(f"{rule}_mismatch")

    excluded = excluded_treatment_types(study, patient.tratamiento_tipo)
    checks["treatment_types"] = {"passed": not excluded, "excluded": excluded}
    if excluded:
        reasons.append("treatment_type_excluded")

    ecog_reasons = check_ecog(study, patient.ecog_score)
    checks["ecog"] = {
        "passed": not ecog_reasons,
        "score": patient.ecog_score,
        "min": to_number(study.get("ecog_min")),
        "max": to_number(study.get("ecog_max")),
    }
    reasons.extend(ecog_reasons)

    evaluation["reasons"] = reasons
    evaluation["eligible"] = not reasons
    return evaluation


def compact_study(study: Mapping[str, Any]) -> dict:
    centers = study.get("centros_protocolo")
    return {
        "id": str(study.get("id") or ""),
        "protocolo": str(study.get("protocolo") or ""),
        "enfermedad": str(study.get("enfermedad") or ""),
        "subtipo": str(study.get("subtipo") or ""),
        "fase_protocolo": to_number(study.get("fase_protocolo")),
        "estado_protocolo": str(study.get("estado_protocolo") or ""),
        "cod_clinical_trials_protocolo": str(study.get("cod_clinical_trials_protocolo") or ""),
        "url_clinical_trials_protocolo": str(study.get("url_clinical_trials_protocolo") or ""),
        "centros_protocolo": list(centers) if isinstance(centers, (list, tuple)) else [],
    }


def rank_reasons(evaluations: Sequence[dict]) -> list[dict]:
    """Failure reason counts, most frequent first (ties by name)."""
    counts = Counter(reason for e in evaluations for reason in e["reasons"])
    ordered = sorted(counts.items(), key=lambda item: (-item[1], item[0]))
    return [{"reason": reason, "count": count} for reason, count in ordered]


def find_matching_studies(
    normalized: Mapping[str, Any],
    studies: Sequence[Mapping[str, Any]],
    centers: Optional[Sequence[str]] = None,
) -> dict:
    """
    Evaluate every study in ``studies`` against ``normalized``.

    ``centers`` defaults to the patient's declared centers; pass ``[]`` for the
    unscoped (all centers) run.
    """
    patient = PatientInput.from_normalized(normalized)
    centers = list(patient.centro if centers is None else centers)

    evaluations = [evaluate_study(study, patient, centers) for study in studies]
    matched = [compact_study(s) for s, e in zip(studies, evaluations) if e["eligible"]]

    return {
        "ecog_score": patient.ecog_score,
        "total_matches": len(matched),
        "studies": matched,
        "debug": {
            "centers_filter": centers,
            "evaluated": len(evaluations),
            "top_reasons": rank_reasons(evaluations),
            "evaluations": evaluations,
            "patient": patient.snapshot(),
        },
    }


def derive_cross_center(scoped: dict, unscoped: dict, centers: Sequence[str]) -> dict:
    """Matches available at other centers: all-centers matches outside the scoped set and the declared centers."""
    declared = {normalize_text(c) for c in centers}
    scoped_ids = {s["id"] for s in scoped["studies"]}
    other = [
        s for s in unscoped["studies"]
        if s["id"] not in scoped_ids
        and not declared.intersection(normalize_text(c) for c in s["centros_protocolo"])
    ]
    return {
        "centers": list(centers),
        "ecog_score": unscoped["ecog_score"],
        "total_matches_current_centers": scoped["total_matches"],
        "total_matches_all_centers": unscoped["total_matches"],
        "studies_all_centers": unscoped["studies"],
        "total_other_centers": len(other),
        "studies_other_centers": other,
    }
