"""
Available-Parameter Guard

Lists the parameters that actually exist in the structured documents so
generation prompts can be restricted to them, and checks generated text
for markers that were mentioned without being available.
"""
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Sequence, Tuple

from medbrain.core.logic.types import StructuredDocument

RULE = "═" * 55

_HEMATOLOGY = (
    "hemoglobin", "leucócito", "leucocito", "plaqueta", "hematócrito", "hematocrito",
    "hemácia", "hemacia", "eosinófilo", "linfócito", "monócito", "basófilo",
    "neutrófilo", "bastonete", "segmentado",
)
_HORMONES = (
    "tsh", "t3", "t4", "testosterona", "estradiol", "cortisol", "progesterona",
    "prolactin", "fsh", "lh", "insulina", "hormônio", "hormonio",
)
_VITAMINS = ("vitamin", "b12", "ácido fólico", "acido folico", "folato")
_BIOCHEMISTRY = (
    "glicose", "colesterol", "triglicerídeo", "triglicerideo", "creatinina", "ureia",
    "ácido úrico", "acido urico", "transaminase", "tgo", "tgp", "gama gt", "fosfatase",
    "bilirrubina", "albumina", "proteína", "proteina", "sódio", "potássio", "cálcio",
    "magnésio", "ferro", "ferritina",
)

MEDICAL_ABBREVIATIONS: Dict[str, Tuple[str, ...]] = {
    "gama gt": ("gama glutamil transferase", "ggt", "gamma gt"),
    "tgo": ("transaminase glutâmico oxalacética", "ast", "aspartato aminotransferase"),
    "tgp": ("transaminase pirúvica", "alt", "alanina aminotransferase"),
    "tsh": ("tireoestimulante", "hormônio tireoestimulante"),
    "hba1c": ("hemoglobina glicada", "hemoglobina glicosilada", "a1c"),
    "vcm": ("volume corpuscular médio",),
    "hcm": ("hemoglobina corpuscular média",),
    "chcm": ("concentração de hemoglobina corpuscular média",),
    "rdw": ("red cell distribution width", "amplitude de distribuição dos eritrócitos"),
    "t3": ("triiodotironina",),
    "t4": ("tiroxina",),
}

COMMON_PARAMETERS = (
    "TGO", "AST", "TGP", "ALT", "Gama GT", "Fosfatase Alcalina",
    "Bilirrubina", "Hemoglobina", "Hematócrito", "Leucócitos",
    "Plaquetas", "Glicose", "HbA1c", "Colesterol Total",
    "HDL", "LDL", "Triglicerídeos", "Creatinina", "Ureia",
    "TSH", "T4 Livre", "T3 Livre", "Vitamina D", "Vitamina B12", "Ferritina",
    "Ferro", "Testosterona", "Estradiol", "Insulina", "Cortisol",
)

# "<param>" is substituted with the escaped parameter name
_ACCEPTABLE_CONTEXTS = (
    # not available
    r"<param>[^.]{0,100}(not (yet )?(available|tested|measured|evaluated|assessed)|was not (tested|measured|evaluated))",
    r"<param>[^.]{0,100}(não (está |estão )?(disponíveis?|testados?|medidos?|avaliados?)|não foi (testado|medido|avaliado))",
    r"(data|values|information|dados|valores|informações)[^.]{0,80}<param>[^.]{0,80}(not|não) (available|tested|measured|disponíveis?|testados?|medidos?)",
    r"<param>[^.]{0,80}(missing|absent|pending|ausentes?|faltando|pendentes?)",
    r"\(.*<param>[^)]{0,100}(not |no |não |sem )(available|tested|data|disponíveis?|testados?|dados?)",
    r"<param>[^:]{0,50}:[^.]{0,50}(not|não) (available|tested|disponíveis?|testados?)",
    # suggested for a future exam
    r"(markers|exams|tests|parameters|marcadores|exames|testes|parâmetros)[^.]{0,100}(suggest|recommend|indicat|request|sugerid|recomendad|indicad|solicitad)[^.]{0,100}<param>",
    r"<param>[^.]{0,80}(next|future|upcoming|follow-up|próxim|futur|seguinte)[^.]{0,30}(evaluation|exam|panel|cycle|avaliação|exame|ciclo)",
    r"(request|order|include|add|recommend|solicitar|pedir|incluir|adicionar|recomendar)[^.]{0,80}<param>",
    r"<param>[^.]{0,50}(not (done|performed)|no (data|values)|não (testado|realizado|feito)|sem (dados|valores))",
)

_AST_RE = re.compile(r"\b(tgo|ast)\b", re.IGNORECASE)


@dataclass
class ParameterDetail:
    value: Any
    unit: Optional[str] = None
    reference_range: Optional[str] = None
    status: Optional[str] = None
    document_type: str = "unknown"


@dataclass
class AvailableParameters:
    names: List[str] = field(default_factory=list)
    by_document: Dict[str, List[str]] = field(default_factory=dict)
    details: Dict[str, ParameterDetail] = field(default_factory=dict)


@dataclass
class ParameterValidation:
    valid: bool
    hallucinated: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)


def extract_available_parameters(documents: Sequence[StructuredDocument]) -> AvailableParameters:
    """Sorted unique parameter names; the first occurrence keeps its details."""
    names = set()
    result = AvailableParameters()

    for doc in documents:
        doc_params = []
        for module in doc.modules:
            for param in module.parameters:
                if not param.name:
                    continue
                name = param.name.strip()
                names.add(name)
                doc_params.append(name)
                if name not in result.details:
                    result.details[name] = ParameterDetail(
                        value=param.value,
                        unit=param.unit,
                        reference_range=param.reference_range,
                        status=param.status,
                        document_type=doc.document_type,
                    )
        if doc_params:
            result.by_document[doc.document_type] = doc_params

    result.names = sorted(names)
    return result


def _category(name: str) -> str:
    lower = name.lower()
    if any(k in lower for k in _HEMATOLOGY):
        return "hematology"
    if any(k in lower for k in _HORMONES):
        return "hormones"
    if any(k in lower for k in _VITAMINS):
        return "vitamins"
    if any(k in lower for k in _BIOCHEMISTRY):
        return "biochemistry"
    return "others"


_SECTION_TITLES = (
    ("hematology", "## HEMATOLOGY"),
    ("biochemistry", "## BIOCHEMISTRY"),
    ("hormones", "## HORMONES"),
    ("vitamins", "## VITAMINS AND MINERALS"),
    ("others", "## OTHER PARAMETERS"),
)


def build_parameters_context(documents: Sequence[StructuredDocument]) -> str:
    """Prompt block listing every available parameter, grouped by area."""
    available = extract_available_parameters(documents)
    if not available.names:
        return "**ATTENTION:** No structured data available. Do not mention specific exam values."

    lines = [
        RULE,
        "📊 PARAMETERS AVAILABLE IN THE DOCUMENTS",
        RULE,
        "",
        "⚠️  CRITICAL RULE: You MUST mention ONLY the parameters listed below.",
        "⚠️  NEVER invent, infer or mention parameters that are NOT on this list.",
        '⚠️  If a parameter was not tested, write "not available" or "not tested".',
        "",
        f"Total available parameters: {len(available.names)}",
        "",
        "---",
        "",
    ]

    groups: Dict[str, List[str]] = {key: [] for key, _ in _SECTION_TITLES}
    for name in available.names:
        detail = available.details[name]
        value = detail.value if detail.value is not None else "N/A"
        line = f"- {name}: {value} {detail.unit or ''}"
        if detail.reference_range:
            line += f" (Ref: {detail.reference_range})"
        groups[_category(name)].append(line)

    for key, title in _SECTION_TITLES:
        if groups[key]:
            lines.append(title)
            lines.extend(groups[key])
            lines.append("")

    lines.append(RULE)
    lines.append("")
    return "\n".join(lines)


def is_parameter_available(name: str, available: Sequence[str]) -> bool:
    lower = name.lower().strip()
    available_lower = [a.lower() for a in available]

    if any(lower in a or a in lower for a in available_lower):
        return True

    for abbrev in MEDICAL_ABBREVIATIONS.get(lower, ()):
        if any(abbrev in a for a in available_lower):
            return True

    for abbrev, full_names in MEDICAL_ABBREVIATIONS.items():
        if any(fn in lower for fn in full_names):
            if any(abbrev in a for a in available_lower):
                return True

    return False


def _mentions(text: str, name: str) -> bool:
    return re.search(rf"(?<![\w]){re.escape(name)}(?![\w])", text, re.IGNORECASE) is not None


def _in_acceptable_context(text: str, name: str) -> bool:
    escaped = re.escape(name.lower())
    return any(
        re.search(pattern.replace("<param>", escaped), text, re.IGNORECASE)
        for pattern in _ACCEPTABLE_CONTEXTS
    )


def validate_mentioned_parameters(text: str, available: Sequence[str]) -> ParameterValidation:
    """
    Flag common markers mentioned in `text` that are absent from `available`.

    A mention is accepted when it says the marker was not tested or
    suggests it for a future exam.
    """
    hallucinated: List[str] = []
    warnings: List[str] = []

    for param in COMMON_PARAMETERS:
        if not _mentions(text, param):
            continue
        if is_parameter_available(param, available):
            continue
        if _in_acceptable_context(text, param):
            continue

        if param.lower() in ("ast", "tgo"):
            # guard against words like "bastonetes"
            if not _AST_RE.search(text):
                continue
            hallucinated.append(param)
            warnings.append(
                f'"{param}" was mentioned but is NOT available in the documents. '
                f'Possible confusion with "BASTOS" or "BASTONETES".'
            )
        else:
            hallucinated.append(param)
            warnings.append(f'"{param}" was mentioned but is NOT available in the documents.')

    return ParameterValidation(valid=not hallucinated, hallucinated=hallucinated, warnings=warnings)
