"""Merge-reason heuristics for near-duplicate tag labels.

Classifies why two labels probably name the same thing. Every detector is
deterministic and dictionary or rule based, and each fired reason carries
its own confidence. The pair's confidence is the strongest reason, never a
sum, so several weak signals cannot add up to a certain merge.
"""

import re
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, List, Optional

from .similarity import edit_distance, fold_label


class MergeReason(str, Enum):
    CASE = "case"
    PLURAL = "plural"
    TYPO = "typo"
    ACRONYM = "acronym"
    LANGUAGE = "language"
    SYNONYM = "synonym"


# Confidence per reason
REASON_CONFIDENCE = {
    MergeReason.CASE: 0.95,
    MergeReason.PLURAL: 0.90,
    MergeReason.TYPO: 0.70,
    MergeReason.ACRONYM: 0.95,
    MergeReason.LANGUAGE: 0.90,
    MergeReason.SYNONYM: 0.88,
}

# Accent, hyphen or spacing differences are reported as CASE with this lower score
SPELLING_VARIATION_CONFIDENCE = 0.85


# =============================================================================
# CURATED DICTIONARIES
# =============================================================================
# Keys and values are compared after fold_label(), so accents are optional.

SYNONYMS: Dict[str, List[str]] = {
    # Healthcare
    "doenca": ["enfermidade", "patologia", "molestia", "afeccao"],
    "tratamento": ["terapia", "intervencao", "procedimento"],
    "medico": ["doutor", "clinico", "profissional de saude"],
    "hospital": ["clinica", "unidade de saude", "centro medico"],
    "paciente": ["doente", "enfermo"],
    "remedio": ["medicamento", "farmaco"],
    "sintoma": ["sinal", "manifestacao"],
    "exame": ["teste", "avaliacao", "analise"],
    "consulta": ["atendimento", "visita"],
    "cirurgia": ["operacao", "intervencao cirurgica", "procedimento cirurgico"],
    "diagnostico": ["parecer", "laudo"],
    "receita": ["prescricao"],
    "vacina": ["imunizante"],
    "febre": ["hipertermia", "pirexia"],
    "hemorragia": ["sangramento"],
    "ferida": ["lesao", "ferimento"],
    "gravidez": ["gestacao"],
    "obito": ["morte", "falecimento"],
    "coracao": ["miocardio"],
    "cerebro": ["encefalo"],
    # Business
    "relatorio": ["informe", "documento"],
    "processo": ["procedimento", "fluxo"],
    "gestao": ["administracao", "gerenciamento", "gerencia"],
    "equipe": ["time", "grupo", "staff"],
    "cliente": ["consumidor", "comprador"],
    "fornecedor": ["provedor", "distribuidor"],
    "custo": ["despesa", "gasto"],
    "lucro": ["ganho", "rendimento"],
    "contrato": ["acordo", "convenio"],
    "estoque": ["inventario"],
    "produto": ["mercadoria", "artigo"],
    "objetivo": ["meta", "alvo", "finalidade"],
    "prazo": ["deadline", "limite"],
    # Technology
    "sistema": ["plataforma", "aplicacao"],
    "dados": ["informacoes", "registros"],
    "usuario": ["utilizador", "operador"],
    "erro": ["falha", "bug", "defeito"],
    "atualizacao": ["update", "upgrade"],
    "configuracao": ["setup", "parametrizacao"],
    "pasta": ["diretorio", "folder"],
}

# Portuguese term -> English equivalents
LANGUAGE_EQUIVALENTS: Dict[str, List[str]] = {
    "saude": ["health", "healthcare"],
    "paciente": ["patient"],
    "medico": ["doctor", "physician", "medical"],
    "enfermeiro": ["nurse", "nursing"],
    "tratamento": ["treatment"],
    "diagnostico": ["diagnosis", "diagnostic"],
    "doenca": ["disease", "illness"],
    "remedio": ["medicine", "medication", "drug"],
    "cirurgia": ["surgery", "surgical"],
    "exame": ["exam", "examination"],
    "consulta": ["appointment", "consultation"],
    "sintoma": ["symptom"],
    "vacina": ["vaccine", "vaccination"],
    "terapia": ["therapy", "therapeutic"],
    "farmacia": ["pharmacy"],
    "emergencia": ["emergency"],
    "clinica": ["clinic", "clinical"],
    "internacao": ["hospitalization", "admission"],
    "uti": ["icu", "intensive care"],
    "pronto socorro": ["emergency room", "emergency department"],
    "coracao": ["heart", "cardiac"],
    "pulmao": ["lung", "pulmonary"],
    "cerebro": ["brain"],
    "figado": ["liver"],
    "rim": ["kidney", "renal"],
    "pele": ["skin"],
    "sangue": ["blood"],
    "cardiologia": ["cardiology"],
    "neurologia": ["neurology"],
    "oncologia": ["oncology"],
    "pediatria": ["pediatrics", "paediatrics"],
    "dermatologia": ["dermatology"],
    "ortopedia": ["orthopedics", "orthopaedics"],
    "psiquiatria": ["psychiatry"],
    "radiologia": ["radiology"],
    "fisioterapia": ["physiotherapy", "physical therapy"],
    "tomografia": ["tomography", "ct scan"],
    "ultrassom": ["ultrasound"],
    "hipertensao": ["hypertension", "high blood pressure"],
    "gripe": ["flu", "influenza"],
    "dor": ["pain"],
    "relatorio": ["report"],
    "projeto": ["project"],
    "analise": ["analysis", "analytics"],
    "qualidade": ["quality"],
    "seguranca": ["security", "safety"],
    "gestao": ["management"],
    "dados": ["data"],
    "usuario": ["user"],
    "cliente": ["client", "customer"],
    "orcamento": ["budget"],
    "vendas": ["sales"],
    "estoque": ["stock", "inventory"],
    "fornecedor": ["supplier", "vendor"],
    "pagamento": ["payment"],
    "tecnologia": ["technology"],
    "banco de dados": ["database"],
    "aplicativo": ["application", "app"],
    "inteligencia artificial": ["artificial intelligence"],
    "aprendizado de maquina": ["machine learning"],
}

# Acronyms whose expansion does not follow strict initials
DEFAULT_ACRONYMS: Dict[str, List[str]] = {
    "UTI": ["Unidade de Terapia Intensiva"],
    "SUS": ["Sistema Único de Saúde"],
    "TI": ["Tecnologia da Informação"],
    "RH": ["Recursos Humanos"],
    "IA": ["Inteligência Artificial"],
    "PS": ["Pronto Socorro"],
}

# Plural suffix -> singular suffix, applied to folded labels
PLURAL_SUFFIXES = [
    ("oes", "ao"),
    ("ais", "al"),
    ("eis", "el"),
    ("ns", "m"),
    ("ies", "y"),
    ("es", ""),
    ("s", ""),
]


@dataclass
class ReasonResult:
    """Fired reasons for one label pair, in detection order."""
    reasons: List[MergeReason] = field(default_factory=list)
    confidence: float = 0.0
    explanations: List[str] = field(default_factory=list)

    def add(self, reason: MergeReason, confidence: float, explanation: str) -> None:
        if reason not in self.reasons:
            self.reasons.append(reason)
        self.confidence = max(self.confidence, confidence)
        self.explanations.append(explanation)

    def to_dict(self) -> Dict:
        return {
            "reasons": [r.value for r in self.reasons],
            "confidence": self.confidence,
            "explanations": list(self.explanations),
        }


# =============================================================================
# DETECTORS
# =============================================================================

def detect_case_variation(a: str, b: str) -> Optional[float]:
    """Return a confidence if the labels differ only in case or spelling form."""
    if a == b:
        return None
    if a.lower() == b.lower():
        return REASON_CONFIDENCE[MergeReason.CASE]
    if fold_label(a) == fold_label(b):
        return SPELLING_VARIATION_CONFIDENCE
    return None


def _singular_forms(word: str) -> List[str]:
    forms = []
    for plural, singular in PLURAL_SUFFIXES:
        if word.endswith(plural) and len(word) > len(plural):
            forms.append(word[: -len(plural)] + singular)
    return forms


def detect_plural(a: str, b: str) -> bool:
    """Check whether one folded label is a plural form of the other."""
    f1, f2 = fold_label(a), fold_label(b)
    if not f1 or not f2 or f1 == f2:
        return False
    return f2 in _singular_forms(f1) or f1 in _singular_forms(f2)


def is_acronym(text: str) -> bool:
    letters = re.sub(r"[^A-Za-z]", "", text)
    return 2 <= len(letters) <= 6 and letters == letters.upper() and len(text.strip()) <= 8


def detect_acronym(a: str, b: str, acronyms: Optional[Dict[str, List[str]]] = None) -> bool:
    """Check whether one label is the acronym of the other.

    The acronym's letters must equal the initials of every word of the
    expansion (two or more words, connecting words included), or the pair
    must be listed in the curated acronym table.
    """
    a_is, b_is = is_acronym(a), is_acronym(b)
    if a_is == b_is:
        return False

    acronym, full = (a, b) if a_is else (b, a)
    acronym_key = re.sub(r"[^A-Za-z]", "", acronym).upper()

    table = dict(DEFAULT_ACRONYMS)
    if acronyms:
        table.update({k.upper(): v for k, v in acronyms.items()})
    if fold_label(full) in [fold_label(e) for e in table.get(acronym_key, [])]:
        return True

    words = [w for w in re.split(r"[\s\-]+", full) if w]
    if len(words) < 2:
        return False
    initials = "".join(fold_label(w[0]) for w in words).upper()
    return initials == acronym_key


def detect_typo(a: str, b: str) -> Optional[int]:
    """Return the edit distance if the folded labels look like a typo of each other."""
    f1, f2 = fold_label(a), fold_label(b)
    if abs(len(f1) - len(f2)) > 2:
        return None

    distance = edit_distance(f1, f2)
    max_length = max(len(f1), len(f2))

    if max_length >= 5 and 0 < distance <= 2:
        return distance
    if 3 <= max_length < 5 and distance == 1:
        return distance
    return None


def _in_table(f1: str, f2: str, table: Dict[str, List[str]], shared_list: bool) -> bool:
    for head, entries in table.items():
        head_f = fold_label(head)
        entries_f = [fold_label(e) for e in entries]
        if (f1 == head_f and f2 in entries_f) or (f2 == head_f and f1 in entries_f):
            return True
        if shared_list and f1 in entries_f and f2 in entries_f:
            return True
    return False


def detect_language_equivalence(a: str, b: str) -> bool:
    f1, f2 = fold_label(a), fold_label(b)
    if f1 == f2:
        return False
    return _in_table(f1, f2, LANGUAGE_EQUIVALENTS, shared_list=False)


def detect_synonym(a: str, b: str) -> bool:
    f1, f2 = fold_label(a), fold_label(b)
    if f1 == f2:
        return False
    return _in_table(f1, f2, SYNONYMS, shared_list=True)


# =============================================================================
# ENTRY POINT
# =============================================================================

def suggest_merge_reasons(a: str, b: str,
                          acronyms: Optional[Dict[str, List[str]]] = None) -> ReasonResult:
    """Classify why two labels are probably duplicates.

    Args:
        a: First label
        b: Second label
        acronyms: Extra acronym -> expansions entries, merged over DEFAULT_ACRONYMS

    Returns:
        ReasonResult. Confidence is the maximum over fired reasons, 0 when
        nothing fired or either label is blank.
    """
    result = ReasonResult()
    a = (a or "").strip()
    b = (b or "").strip()
    if not a or not b:
        return result

    if detect_synonym(a, b):
        result.add(MergeReason.SYNONYM, REASON_CONFIDENCE[MergeReason.SYNONYM],
                   f'Synonyms: "{a}" <-> "{b}"')

    plural = detect_plural(a, b)
    if plural:
        result.add(MergeReason.PLURAL, REASON_CONFIDENCE[MergeReason.PLURAL],
                   f'Singular/plural variation: "{a}" <-> "{b}"')

    case_confidence = detect_case_variation(a, b)
    if case_confidence is not None:
        if case_confidence == REASON_CONFIDENCE[MergeReason.CASE]:
            explanation = f'Differ only by letter case: "{a}" <-> "{b}"'
        else:
            explanation = f'Spelling or formatting variation: "{a}" <-> "{b}"'
        result.add(MergeReason.CASE, case_confidence, explanation)

    acronym = detect_acronym(a, b, acronyms)
    if acronym:
        result.add(MergeReason.ACRONYM, REASON_CONFIDENCE[MergeReason.ACRONYM],
                   f'Acronym and expansion: "{a}" <-> "{b}"')

    if not plural and case_confidence is None and not acronym:
        distance = detect_typo(a, b)
        if distance is not None:
            result.add(MergeReason.TYPO, REASON_CONFIDENCE[MergeReason.TYPO],
                       f'Possible typo (edit distance {distance}): "{a}" <-> "{b}"')

    if detect_language_equivalence(a, b):
        result.add(MergeReason.LANGUAGE, REASON_CONFIDENCE[MergeReason.LANGUAGE],
                   f'PT/EN equivalents: "{a}" <-> "{b}"')

    return result
