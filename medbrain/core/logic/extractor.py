"""
Biomarker Extractor

Maps parameter names found in structured medical documents to canonical
biomarker slugs and parses their values into numbers.

Matching is tiered: every variant related to the parameter name by
substring containment is a candidate, and the best tier wins
(exact > name starts with variant > variant starts with name >
whole-word containment > bare substring). Inside a tier the longer
variant wins; remaining ties go to the first match in table order.

Unmatched names and unparseable values are skipped, never zeroed.
"""
from __future__ import annotations

import re
import unicodedata
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Tuple

from medbrain.utils.logging import get_logger
from .types import BiomarkerValue, StructuredDocument

logger = get_logger(__name__)


# ── Name variants (normalised form is computed at import) ─────────────────────
BIOMARKER_NAME_MAP: Dict[str, List[str]] = {
    # Metabolic
    "insulina": ["insulina basal", "insulina em jejum", "insulina jejum", "insulina", "insulin"],
    "glicemia": ["glicose", "glicemia jejum", "glicemia de jejum", "glicemia", "glucose"],
    "hba1c": ["hemoglobina glicada", "hemoglobina glicosilada", "hba1c", "a1c", "hgba1c"],
    "homa_ir": ["homa ir", "homa-ir", "homeostasis model assessment"],
    "homa_beta": ["homa beta", "homa-beta"],

    # Lipid panel
    "triglicerideos": ["triglicerideos", "triglicerides", "triglicérides", "tg"],
    "hdl": ["colesterol hdl", "hdl colesterol", "hdl-colesterol", "hdl"],
    "ldl": ["colesterol ldl", "ldl colesterol", "ldl-colesterol", "ldl"],
    "colesterol_total": ["colesterol total", "total cholesterol"],
    "colesterol_nao_hdl": ["colesterol nao hdl", "non-hdl cholesterol"],
    "vldl": ["vldl", "vldl colesterol"],
    "apolipoproteina_a1": ["apolipoproteina a1", "apo a1", "apoa1"],
    "apolipoproteina_b": ["apolipoproteina b", "apo b", "apob"],
    "lipoproteina_a": ["lipoproteina a", "lp(a)", "lipoproteína a"],

    # Thyroid
    "tsh": ["tsh tireoestimulante", "hormonio tireoestimulante", "tsh", "thyroid stimulating hormone"],
    "t3_livre": ["t3 livre", "t3l", "free t3", "triiodotironina livre"],
    "t4_livre": ["t4 livre", "t4l", "free t4", "tiroxina livre"],
    "t3_reverso": ["t3 reverso", "t3r", "reverse t3", "t3 reverse"],
    "t4_total": ["t4 total", "tiroxina total"],
    "anti_tpo": ["anticorpos antiperoxidase", "anti-tpo", "antitpo"],
    "anti_tg": ["anticorpos antitireoglobulina", "anti-tg", "antitg"],

    # Liver
    "gama_gt": ["gama glutamil transferase", "gama gt", "gamaglutamiltransferase", "ggt", "gamma gt"],
    "tgo": ["transaminase oxalacetica", "tgo", "ast", "aspartato aminotransferase", "sgot"],
    "tgp": ["transaminase piruvica", "tgp", "alt", "alanina aminotransferase", "sgpt"],
    "fosfatase_alcalina": ["fosfatase alcalina", "fa", "alkaline phosphatase", "alp"],
    "bilirrubina_total": ["bilirrubina total"],
    "bilirrubina_direta": ["bilirrubina direta"],
    "bilirrubina_indireta": ["bilirrubina indireta"],

    # Kidney
    "creatinina": ["creatinina", "creatinine"],
    "ureia": ["ureia", "urea", "bun"],
    "acido_urico": ["acido urico", "uric acid"],
    "taxa_filtracao_glomerular": ["taxa de filtracao glomerular", "tfg", "egfr", "estimativa da taxa de filtracao"],

    # Hematology
    "ferritina": ["ferritina", "ferritin"],
    "hemoglobina": ["hemoglobina", "hemoglobin"],
    "hematocrito": ["hematocrito", "hematocrit"],
    "hemacias": ["hemacias", "eritrocitos", "red blood cells", "rbc"],
    "leucocitos": ["leucocitos", "white blood cells", "wbc"],
    "plaquetas": ["plaquetas", "platelets"],
    "vcm": ["vcm", "volume corpuscular medio", "mcv"],
    "hcm": ["hcm", "hemoglobina corpuscular media", "mch"],
    "chcm": ["chcm", "concentracao de hemoglobina corpuscular media", "mchc"],
    "rdw": ["rdw", "red cell distribution width"],
    "vmp": ["vmp", "volume plaquetario medio", "mpv"],

    # White cell differential
    "neutrofilos": ["neutrofilos", "segmentados", "neutrophils"],
    "linfocitos": ["linfocitos", "lymphocytes"],
    "monocitos": ["monocitos", "monocytes"],
    "eosinofilos": ["eosinofilos", "eosinophils"],
    "basofilos": ["basofilos", "basophils"],
    "bastonetes": ["bastonetes", "band cells"],

    # Inflammation
    "homocisteina": ["homocisteina", "homocysteine"],
    "pcr_us": ["proteina c reativa ultrassensivel", "pcr ultrassensivel", "pcr ultra-sensivel", "pcr us", "hs-crp"],
    "fibrinogenio": ["fibrinogenio", "fibrinogen"],
    "ferro_serico": ["ferro serico", "serum iron"],

    # Vitamins & minerals
    "vitamina_d3": ["vitamina d3 25-hidroxi", "vitamina d3 25hidroxi", "vitamina d", "vitamin d", "25-oh vitamina d", "25ohd"],
    "vitamina_b12": ["vitamina b12", "cobalamina", "vitamin b12"],
    "vitamina_c": ["vitamina c", "acido ascorbico", "vitamin c"],
    "acido_folico": ["acido folico", "folato", "folic acid"],
    "zinco_serico": ["zinco serico", "zinc"],

    # Hormones
    "cortisol": ["cortisol"],
    "testosterona": ["testosterona total", "testosterona", "testosterone"],
    "testosterona_livre": ["testosterona livre", "free testosterone"],
    "estradiol": ["estradiol"],
    "progesterona": ["progesterona", "progesterone"],
    "dht": ["dht", "dihidrotestosterona", "dihydrotestosterone"],
    "shbg": ["globulina ligadora de hormonios sexuais", "shbg", "sex hormone binding globulin"],
    "dhea_s": ["sulfato de dehidroepiandrosterona", "dhea-s", "sdhea"],
    "lh": ["lh", "hormonio luteinizante", "luteinizing hormone"],
    "fsh": ["fsh", "hormonio foliculo estimulante", "follicle stimulating hormone"],
    "paratormonio": ["paratormonio", "pth", "parathyroid hormone"],

    # Electrolytes
    "sodio": ["sodio", "sodium"],
    "potassio": ["potassio", "potassium"],
    "calcio": ["calcio ionico", "calcio livre", "calcio", "calcium"],
    "magnesio": ["magnesio", "magnesium"],

    # Prostate
    "psa_total": ["psa total"],
    "psa_livre": ["psa livre"],
    "relacao_psa": ["relacao psa livre psa total", "psa ratio"],

    # Proteins
    "albumina": ["albumina", "albumin"],
    "proteina_total": ["proteina total", "total protein"],

    # Body composition (bioimpedance)
    "peso_corporal": ["peso", "peso corporal", "weight", "body weight"],
    "massa_muscular_esqueletica": ["massa muscular esqueletica", "massa muscular", "skeletal muscle mass", "smm"],
    "massa_gordura": ["massa de gordura", "massa gorda", "fat mass", "body fat mass"],
    "percentual_gordura": ["pgc", "percentual de gordura corporal", "body fat percentage", "%gc"],
    "imc": ["imc", "indice de massa corporal", "bmi", "body mass index"],
    "agua_corporal": ["agua corporal total", "agua corporal", "total body water", "tbw"],
    "proteina_corporal": ["proteina corporal", "body protein"],
    "minerais_corporais": ["minerais", "minerais corporais", "minerals", "body minerals"],
    "gordura_visceral": ["nivel de gordura visceral", "gordura visceral", "visceral fat level", "vfl"],
    "taxa_metabolica_basal": ["taxa metabolica basal", "tmb", "basal metabolic rate", "bmr"],
    "relacao_cintura_quadril": ["relacao cintura-quadril", "relacao cintura quadril", "rcq", "waist-hip ratio", "whr"],
    "pontuacao_inbody": ["pontuacao inbody", "inbody score"],
    "grau_obesidade": ["grau de obesidade", "obesity degree"],
    "peso_ideal": ["peso ideal", "ideal weight"],
    "controle_peso": ["controle de peso", "weight control"],
    "controle_gordura": ["controle de gordura", "fat control"],
    "controle_muscular": ["controle muscular", "muscle control"],
}

# Match tiers (higher wins); variant length breaks ties inside a tier
TIER_EXACT        = 1000
TIER_NAME_PREFIX  = 700
TIER_VARIANT_PREFIX = 600
TIER_WORD_IN_NAME = 500
TIER_NAME_IN_VARIANT = 400
TIER_SUBSTRING    = 100

_NON_ALNUM_RE = re.compile(r"[^a-z0-9 ]")
_WHITESPACE_RE = re.compile(r"\s+")
_NUMBER_RE = re.compile(r"-?\d+(?:\.\d+)?|-?\.\d+")
_INEQUALITY_CHARS = "<>≤≥"


def normalize_name(name: str) -> str:
    """Case-fold, strip diacritics and punctuation, collapse whitespace."""
    decomposed = unicodedata.normalize("NFD", (name or "").lower())
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    cleaned = _NON_ALNUM_RE.sub("", stripped)
    return _WHITESPACE_RE.sub(" ", cleaned).strip()


_NORMALIZED_VARIANTS: List[Tuple[str, str]] = [
    (slug, normalize_name(variant))
    for slug, variants in BIOMARKER_NAME_MAP.items()
    for variant in variants
]


def _match_score(name: str, variant: str) -> int:
    if not name or not variant:
        return 0
    if name == variant:
        return TIER_EXACT + len(variant)
    if name.startswith(variant):
        return TIER_NAME_PREFIX + len(variant)
    if variant.startswith(name):
        return TIER_VARIANT_PREFIX + len(variant)
    if f" {variant} " in f" {name} ":
        return TIER_WORD_IN_NAME + len(variant)
    if f" {name} " in f" {variant} ":
        return TIER_NAME_IN_VARIANT + len(variant)
    if variant in name or name in variant:
        return TIER_SUBSTRING + len(variant)
    return 0


def find_biomarker_slug(parameter_name: str) -> Optional[str]:
    """Best-matching slug for a parameter name, or None."""
    normalized = normalize_name(parameter_name)
    if not normalized:
        return None

    best_slug: Optional[str] = None
    best_score = 0
    for slug, variant in _NORMALIZED_VARIANTS:
        score = _match_score(normalized, variant)
        # strictly greater: first match in table order keeps ties
        if score > best_score:
            best_slug, best_score = slug, score
    return best_slug


def parse_numeric_value(value) -> Optional[float]:
    """
    Parse a parameter value into a float.

    Numbers pass through (booleans are rejected). Strings lose inequality
    prefixes, commas become decimal points, and the first numeric token
    is taken: "< 0,5" -> 0.5, "12.5 mg/dL" -> 12.5.
    """
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if not isinstance(value, str):
        return None

    cleaned = value
    for ch in _INEQUALITY_CHARS:
        cleaned = cleaned.replace(ch, "")
    cleaned = cleaned.replace(",", ".").strip()

    match = _NUMBER_RE.search(cleaned)
    if not match:
        return None
    try:
        return float(match.group(0))
    except ValueError:
        return None


# ── Extraction ────────────────────────────────────────────────────────────────

@dataclass
class ExtractionReport:
    """Extraction output plus the names that were skipped."""
    values: List[BiomarkerValue] = field(default_factory=list)
    unmatched: List[str] = field(default_factory=list)
    unparseable: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, object]:
        return {
            "values": [v.to_dict() for v in self.values],
            "unmatched": list(self.unmatched),
            "unparseable": list(self.unparseable),
        }


def _extract_document(
    document: StructuredDocument,
    document_id: Optional[str],
    report: ExtractionReport,
) -> None:
    exam_date = document.exam_date or datetime.now(timezone.utc).isoformat()
    logger.debug(
        f"Extractor: document {document_id or document.id or '?'} "
        f"({document.document_type}), exam date {exam_date}"
    )

    for module in document.modules:
        for param in module.parameters:
            slug = find_biomarker_slug(param.name)
            if slug is None:
                report.unmatched.append(param.name)
                logger.debug(f"Extractor: no match for '{param.name}'")
                continue

            value = parse_numeric_value(param.value)
            if value is None:
                report.unparseable.append(param.name)
                logger.debug(f"Extractor: could not parse '{param.name}' = {param.value!r}")
                continue

            report.values.append(BiomarkerValue(
                slug=slug,
                value=value,
                unit=param.unit,
                date=exam_date,
                document_id=document_id if document_id is not None else document.id,
                source=f"{module.module_name} - {param.name}",
            ))


def extract_with_diagnostics(
    documents: Sequence[StructuredDocument],
    document_ids: Optional[Sequence[str]] = None,
) -> ExtractionReport:
    """Like `extract_biomarkers` but also reports skipped parameter names."""
    report = ExtractionReport()
    for index, document in enumerate(documents):
        doc_id = document_ids[index] if document_ids and index < len(document_ids) else None
        _extract_document(document, doc_id, report)

    logger.info(
        f"Extractor: {len(report.values)} value(s) from {len(documents)} document(s), "
        f"{len(report.unmatched)} unmatched, {len(report.unparseable)} unparseable"
    )
    return report


def extract_biomarkers(
    documents: Sequence[StructuredDocument],
    document_ids: Optional[Sequence[str]] = None,
) -> List[BiomarkerValue]:
    """Flat list of biomarker observations across all documents."""
    return extract_with_diagnostics(documents, document_ids).values


def _sort_key(date: Optional[str]) -> datetime:
    """Comparable timestamp; undated or unparseable counts as epoch."""
    epoch = datetime(1970, 1, 1, tzinfo=timezone.utc)
    if not date:
        return epoch
    try:
        parsed = datetime.fromisoformat(date.replace("Z", "+00:00"))
    except ValueError:
        return epoch
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def deduplicate_biomarkers(values: Iterable[BiomarkerValue]) -> List[BiomarkerValue]:
    """
    Keep one observation per slug: the most recent by date.

    Only a strictly newer date replaces the kept value, so the first seen
    wins on ties and the operation is idempotent. Output keeps first-seen
    slug order.
    """
    latest: Dict[str, BiomarkerValue] = {}
    total = 0
    for value in values:
        total += 1
        existing = latest.get(value.slug)
        if existing is None or _sort_key(value.date) > _sort_key(existing.date):
            latest[value.slug] = value

    result = list(latest.values())
    logger.debug(f"Extractor: deduplicated {total} -> {len(result)}")
    return result


def supported_biomarkers() -> List[str]:
    return list(BIOMARKER_NAME_MAP.keys())


def biomarker_variations(slug: str) -> List[str]:
    return list(BIOMARKER_NAME_MAP.get(slug, []))
