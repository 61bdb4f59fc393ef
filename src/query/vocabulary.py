"""
Clinical Vocabulary for Query Understanding

Static dictionaries shared by the query parsers:
- Intent trigger keywords and phrase patterns (weighted)
- Entity lexicons (medications, conditions, symptoms, person titles)
- Medical abbreviations and the synonym dictionary used for expansion
- Intent -> artifact type table

Everything here is compiled once at import into immutable structures and
handed to each component through a shared ``Vocabulary`` instance.
"""

from dataclasses import dataclass
from functools import lru_cache
from types import MappingProxyType
from typing import Mapping

# ============================================
# Intent Triggers
# ============================================

# (keywords, weight) groups per intent. Keys match QueryIntent values.
INTENT_KEYWORDS: dict[str, list[tuple[tuple[str, ...], float]]] = {
    "retrieve_medications": [
        (
            (
                "medication",
                "medications",
                "medicine",
                "medicines",
                "drug",
                "drugs",
                "prescription",
                "prescriptions",
                "prescribe",
                "prescribed",
            ),
            1.0,
        ),
        (
            (
                "metformin",
                "insulin",
                "aspirin",
                "lisinopril",
                "atorvastatin",
                "levothyroxine",
                "omeprazole",
                "dosage",
                "dose",
                "doses",
                "mg",
                "pill",
                "pills",
                "tablet",
                "tablets",
            ),
            0.8,
        ),
        (("rx", "refill", "refills", "pharmacy", "taking"), 0.5),
    ],
    "retrieve_care_plans": [
        (
            (
                "care plan",
                "care plans",
                "treatment plan",
                "treatment plans",
                "plan of care",
                "care coordination",
                "care management",
            ),
            1.0,
        ),
        (
            (
                "treatment",
                "therapy",
                "intervention",
                "goal",
                "goals",
                "objective",
                "objectives",
                "recommendation",
                "recommendations",
            ),
            0.7,
        ),
        (("plan", "planning", "strategy", "approach", "protocol"), 0.5),
    ],
    "retrieve_notes": [
        (
            (
                "note",
                "notes",
                "progress note",
                "progress notes",
                "clinical note",
                "clinical notes",
                "documentation",
                "encounter",
                "encounters",
            ),
            1.0,
        ),
        (
            (
                "visit",
                "visits",
                "appointment",
                "appointments",
                "consultation",
                "consultations",
                "assessment",
                "assessments",
                "chart",
                "charting",
            ),
            0.7,
        ),
        (("documented", "recorded", "reported", "written", "noted"), 0.5),
    ],
    "summary": [
        (
            (
                "summarize",
                "summarise",
                "summary",
                "summaries",
                "overview",
                "brief",
                "highlights",
                "key points",
            ),
            1.0,
        ),
        (
            (
                "tell me about",
                "give me",
                "show me",
                "describe",
                "explain",
            ),
            0.6,
        ),
        (("everything", "comprehensive", "entire"), 0.4),
    ],
    "comparison": [
        (
            (
                "compare",
                "comparison",
                "versus",
                "vs",
                "difference",
                "differences",
                "changed",
                "changes",
            ),
            1.0,
        ),
        (
            (
                "before and after",
                "then and now",
                "previous",
                "current",
                "latest",
                "earlier",
            ),
            0.7,
        ),
        (("trend", "trends", "progression", "evolution"), 0.5),
    ],
    "retrieve_all": [
        (("all", "any", "anything", "complete", "full"), 0.6),
        (("records", "data", "information", "history", "medical history"), 0.4),
    ],
}

# Phrase-level triggers, checked as regular expressions against the lowered text.
INTENT_PHRASE_PATTERNS: list[tuple[str, str, float]] = [
    (
        r"what (changed|differences?|variations?)|how (did|has).*(changed?|differ|vary)"
        r"|compare.*(with|to|between)",
        "comparison",
        1.5,
    ),
    (r"(give|show|tell).*(summary|overview|brief)|\bsummari[sz]e\b", "summary", 1.5),
    (
        r"what (medications?|drugs?|prescriptions?)|list.*medications?|medications?.*taking",
        "retrieve_medications",
        1.5,
    ),
    (r"what.*(treatment plan|care plan)|show.*(plan of care)", "retrieve_care_plans", 1.5),
    (r"show.*\b(notes?|visits?|encounters?)\b|recent (notes?|visits?)", "retrieve_notes", 1.5),
]

INTENT_ARTIFACT_TYPES: dict[str, list[str] | None] = {
    "retrieve_medications": ["medication_order", "prescription"],
    "retrieve_care_plans": ["care_plan", "treatment_plan"],
    "retrieve_notes": ["progress_note", "clinical_note", "encounter", "visit_note"],
    "retrieve_all": None,
    "summary": None,
    "comparison": None,
    "unknown": None,
}

# ============================================
# Calendar Terms
# ============================================

MONTH_NAMES: dict[str, int] = {
    "january": 1,
    "february": 2,
    "march": 3,
    "april": 4,
    "may": 5,
    "june": 6,
    "july": 7,
    "august": 8,
    "september": 9,
    "october": 10,
    "november": 11,
    "december": 12,
}

# Full names and common three/four-letter abbreviations
MONTH_PATTERN = (
    r"(?:jan(?:uary)?|feb(?:ruary)?|mar(?:ch)?|apr(?:il)?|may|june?|july?"
    r"|aug(?:ust)?|sep(?:t(?:ember)?)?|oct(?:ober)?|nov(?:ember)?|dec(?:ember)?)"
)

TIME_UNIT_PATTERN = r"(?:day|week|month|year)s?"

# ============================================
# Entity Lexicons
# ============================================

MEDICATION_TERMS: list[str] = [
    # Generic names
    "acetaminophen",
    "ibuprofen",
    "aspirin",
    "metformin",
    "insulin",
    "lisinopril",
    "atorvastatin",
    "amlodipine",
    "levothyroxine",
    "omeprazole",
    "simvastatin",
    "losartan",
    "gabapentin",
    "hydrochlorothiazide",
    "metoprolol",
    "amoxicillin",
    "prednisone",
    "warfarin",
    "clopidogrel",
    "sertraline",
    "fluoxetine",
    "escitalopram",
    "duloxetine",
    "pantoprazole",
    "albuterol",
    "furosemide",
    "carvedilol",
    "tramadol",
    "hydrocodone",
    "oxycodone",
    "morphine",
    "fentanyl",
    # Drug classes
    "statin",
    "statins",
    "beta blocker",
    "beta blockers",
    "beta-blocker",
    "ace inhibitor",
    "ace inhibitors",
    "ace-inhibitor",
    "arb",
    "diuretic",
    "diuretics",
    "antibiotic",
    "antibiotics",
    "anticoagulant",
    "anticoagulants",
    "blood thinner",
    "blood thinners",
    "antidepressant",
    "antidepressants",
    "antihypertensive",
    "antihypertensives",
    "analgesic",
    "analgesics",
    "nsaid",
    "nsaids",
    # Brand names
    "tylenol",
    "advil",
    "motrin",
    "glucophage",
    "zestril",
    "lipitor",
    "norvasc",
    "synthroid",
    "prilosec",
    "zocor",
    "cozaar",
    "neurontin",
    "lasix",
    "plavix",
    "zoloft",
    "prozac",
    "lexapro",
    "cymbalta",
    "proventil",
    "ventolin",
    "coumadin",
]

CONDITION_TERMS: list[str] = [
    # Chronic
    "diabetes",
    "diabetes mellitus",
    "dm",
    "type 1 diabetes",
    "type 2 diabetes",
    "t1d",
    "t2d",
    "hypertension",
    "htn",
    "high blood pressure",
    "hyperlipidemia",
    "high cholesterol",
    "coronary artery disease",
    "cad",
    "heart failure",
    "chf",
    "congestive heart failure",
    "copd",
    "chronic obstructive pulmonary disease",
    "asthma",
    "chronic kidney disease",
    "ckd",
    "end stage renal disease",
    "esrd",
    "obesity",
    "metabolic syndrome",
    "depression",
    "anxiety",
    "generalized anxiety disorder",
    "hypothyroidism",
    "hyperthyroidism",
    "osteoarthritis",
    "rheumatoid arthritis",
    "osteoporosis",
    # Acute
    "pneumonia",
    "bronchitis",
    "uti",
    "urinary tract infection",
    "cellulitis",
    "gastroenteritis",
    "influenza",
    "flu",
    "covid-19",
    "covid",
    "stroke",
    "cva",
    "cerebrovascular accident",
    "myocardial infarction",
    "heart attack",
    "pulmonary embolism",
    "dvt",
    "deep vein thrombosis",
    # Other
    "anemia",
    "atrial fibrillation",
    "afib",
    "gerd",
    "gastroesophageal reflux disease",
    "irritable bowel syndrome",
    "migraine",
    "migraines",
    "neuropathy",
    "diabetic neuropathy",
    "retinopathy",
    "diabetic retinopathy",
    "nephropathy",
    "diabetic nephropathy",
]

SYMPTOM_TERMS: list[str] = [
    # Pain
    "pain",
    "chest pain",
    "abdominal pain",
    "back pain",
    "headache",
    "headaches",
    "migraine",
    "joint pain",
    "muscle pain",
    "neck pain",
    "shoulder pain",
    # Respiratory
    "cough",
    "shortness of breath",
    "sob",
    "dyspnea",
    "wheezing",
    "chest tightness",
    # Gastrointestinal
    "nausea",
    "vomiting",
    "diarrhea",
    "constipation",
    "heartburn",
    "indigestion",
    "bloating",
    # Cardiovascular
    "palpitations",
    "chest pressure",
    "edema",
    "swelling",
    "leg swelling",
    # Neurological
    "dizziness",
    "vertigo",
    "numbness",
    "tingling",
    "weakness",
    "confusion",
    "memory loss",
    # Constitutional
    "fever",
    "chills",
    "fatigue",
    "tiredness",
    "weight loss",
    "weight gain",
    "night sweats",
    # Other
    "rash",
    "itching",
    "bruising",
    "bleeding",
    "urinary frequency",
    "dysuria",
    "hematuria",
]

# Titles that introduce a named person ("Dr. Smith", "Nurse Alvarez").
PERSON_TITLES: list[str] = [
    "dr",
    "doctor",
    "nurse",
    "mr",
    "mrs",
    "ms",
    "prof",
]

MEDICAL_ABBREVIATIONS: dict[str, str] = {
    # Dosage
    "mg": "milligram",
    "mcg": "microgram",
    "ml": "milliliter",
    # Frequency
    "qd": "once daily",
    "bid": "twice daily",
    "tid": "three times daily",
    "qid": "four times daily",
    "q6h": "every 6 hours",
    "q8h": "every 8 hours",
    "q12h": "every 12 hours",
    "prn": "as needed",
    "hs": "at bedtime",
    # Route
    "po": "by mouth",
    "iv": "intravenous",
    "im": "intramuscular",
    # Conditions
    "htn": "hypertension",
    "dm": "diabetes mellitus",
    "t1d": "type 1 diabetes",
    "t2d": "type 2 diabetes",
    "cad": "coronary artery disease",
    "chf": "congestive heart failure",
    "copd": "chronic obstructive pulmonary disease",
    "ckd": "chronic kidney disease",
    "esrd": "end stage renal disease",
    "gerd": "gastroesophageal reflux disease",
    "uti": "urinary tract infection",
    "cva": "cerebrovascular accident",
    "dvt": "deep vein thrombosis",
    "afib": "atrial fibrillation",
    "sob": "shortness of breath",
    "hx": "history",
    "sx": "symptoms",
}

# ============================================
# Synonym Dictionary
# ============================================

MEDICAL_SYNONYMS: dict[str, list[str]] = {
    # Medications - generic names
    "ibuprofen": ["advil", "motrin", "nsaid", "nonsteroidal anti-inflammatory"],
    "acetaminophen": ["tylenol", "paracetamol", "apap"],
    "aspirin": ["asa", "acetylsalicylic acid"],
    "metformin": ["glucophage", "biguanide"],
    "insulin": ["humulin", "novolin", "lantus", "humalog"],
    "lisinopril": ["zestril", "prinivil", "ace inhibitor"],
    "atorvastatin": ["lipitor", "statin"],
    "amlodipine": ["norvasc", "calcium channel blocker"],
    "levothyroxine": ["synthroid", "thyroid hormone"],
    "omeprazole": ["prilosec", "ppi", "proton pump inhibitor"],
    "simvastatin": ["zocor", "statin"],
    "losartan": ["cozaar", "arb", "angiotensin receptor blocker"],
    "gabapentin": ["neurontin"],
    "hydrochlorothiazide": ["hctz", "microzide", "diuretic"],
    "metoprolol": ["lopressor", "toprol", "beta blocker"],
    "amoxicillin": ["amoxil", "antibiotic", "penicillin"],
    "prednisone": ["corticosteroid", "steroid"],
    "warfarin": ["coumadin", "anticoagulant", "blood thinner"],
    "clopidogrel": ["plavix", "antiplatelet"],
    "sertraline": ["zoloft", "ssri", "antidepressant"],
    "fluoxetine": ["prozac", "ssri", "antidepressant"],
    "escitalopram": ["lexapro", "ssri", "antidepressant"],
    "duloxetine": ["cymbalta", "snri", "antidepressant"],
    "pantoprazole": ["protonix", "ppi"],
    "albuterol": ["proventil", "ventolin", "bronchodilator"],
    "furosemide": ["lasix", "loop diuretic"],
    # Drug classes
    "statin": ["atorvastatin", "simvastatin", "lipitor", "zocor", "cholesterol medication"],
    "beta blocker": ["metoprolol", "atenolol", "carvedilol", "beta-blocker"],
    "ace inhibitor": ["lisinopril", "enalapril", "ramipril", "ace-inhibitor"],
    "arb": ["losartan", "valsartan", "irbesartan", "angiotensin receptor blocker"],
    "diuretic": ["furosemide", "hydrochlorothiazide", "hctz", "lasix", "water pill"],
    "nsaid": ["ibuprofen", "naproxen", "advil", "aleve", "anti-inflammatory"],
    "antibiotic": ["amoxicillin", "azithromycin", "ciprofloxacin", "antibacterial"],
    "anticoagulant": ["warfarin", "coumadin", "blood thinner"],
    "blood thinner": ["anticoagulant", "warfarin", "coumadin"],
    "antidepressant": ["ssri", "snri", "sertraline", "fluoxetine"],
    "antihypertensive": ["blood pressure medication", "ace inhibitor", "beta blocker", "arb"],
    # Conditions - chronic
    "hypertension": ["high blood pressure", "htn", "elevated blood pressure", "bp"],
    "high blood pressure": ["hypertension", "htn", "elevated blood pressure"],
    "diabetes": [
        "diabetes mellitus",
        "dm",
        "type 2 diabetes",
        "t2dm",
        "high blood sugar",
    ],
    "diabetes mellitus": ["diabetes", "dm"],
    "type 2 diabetes": ["t2dm", "type ii diabetes", "adult onset diabetes", "diabetes"],
    "type 1 diabetes": ["t1dm", "type i diabetes", "juvenile diabetes", "diabetes"],
    "hyperlipidemia": ["high cholesterol", "elevated cholesterol", "dyslipidemia"],
    "high cholesterol": ["hyperlipidemia", "elevated cholesterol", "dyslipidemia"],
    "coronary artery disease": ["cad", "coronary heart disease", "chd", "heart disease"],
    "cad": ["coronary artery disease", "coronary heart disease"],
    "heart failure": ["chf", "congestive heart failure", "cardiac failure", "hf"],
    "congestive heart failure": ["chf", "heart failure", "cardiac failure"],
    "chf": ["congestive heart failure", "heart failure", "cardiac failure"],
    "copd": ["chronic obstructive pulmonary disease", "chronic bronchitis", "emphysema"],
    "asthma": ["reactive airway disease", "bronchial asthma", "bronchospasm"],
    "chronic kidney disease": ["ckd", "renal disease", "kidney disease", "renal insufficiency"],
    "ckd": ["chronic kidney disease", "renal disease"],
    "obesity": ["overweight", "elevated bmi"],
    "depression": ["major depressive disorder", "mdd", "depressive disorder", "mood disorder"],
    "anxiety": ["generalized anxiety disorder", "gad", "anxiety disorder"],
    "hypothyroidism": ["underactive thyroid", "low thyroid", "thyroid disorder"],
    "osteoarthritis": ["oa", "degenerative joint disease", "arthritis"],
    "rheumatoid arthritis": ["ra", "autoimmune arthritis", "inflammatory arthritis"],
    # Conditions - acute
    "pneumonia": ["lung infection", "respiratory infection", "pulmonary infection"],
    "bronchitis": ["chest cold", "respiratory infection", "airway infection"],
    "uti": ["urinary tract infection", "bladder infection"],
    "urinary tract infection": ["uti", "bladder infection"],
    "influenza": ["flu", "viral infection", "respiratory illness"],
    "flu": ["influenza", "viral infection"],
    "stroke": ["cva", "cerebrovascular accident", "brain attack", "cerebral infarction"],
    "cva": ["cerebrovascular accident", "stroke"],
    "myocardial infarction": ["mi", "heart attack", "coronary event"],
    "heart attack": ["myocardial infarction", "mi", "cardiac event"],
    "pulmonary embolism": ["pe", "blood clot in lung", "lung clot"],
    "dvt": ["deep vein thrombosis", "blood clot", "venous thrombosis"],
    "deep vein thrombosis": ["dvt", "blood clot", "venous thrombosis"],
    # Other conditions
    "gerd": ["gastroesophageal reflux disease", "acid reflux", "heartburn", "reflux"],
    "irritable bowel syndrome": ["ibs", "spastic colon", "bowel disorder"],
    "migraine": ["severe headache", "migraine headache", "vascular headache"],
    "neuropathy": ["nerve damage", "nerve pain", "peripheral neuropathy"],
    "retinopathy": ["diabetic retinopathy", "eye disease"],
    "anemia": ["low blood count", "low hemoglobin", "iron deficiency"],
    "atrial fibrillation": ["afib", "a-fib", "irregular heartbeat", "arrhythmia"],
    "afib": ["atrial fibrillation", "irregular heartbeat"],
    # Symptoms
    "pain": ["discomfort", "ache", "soreness"],
    "chest pain": ["chest discomfort", "chest pressure", "angina", "thoracic pain"],
    "abdominal pain": ["stomach pain", "belly pain", "abdominal discomfort"],
    "back pain": ["backache", "lumbar pain", "spinal pain"],
    "headache": ["head pain", "cephalgia", "migraine"],
    "shortness of breath": ["sob", "dyspnea", "breathing difficulty", "breathlessness"],
    "sob": ["shortness of breath", "dyspnea"],
    "dyspnea": ["shortness of breath", "sob", "breathing difficulty"],
    "cough": ["coughing", "persistent cough"],
    "nausea": ["queasiness", "upset stomach"],
    "vomiting": ["emesis", "throwing up"],
    "diarrhea": ["loose stools", "watery stools"],
    "constipation": ["irregular bowel movements", "difficulty passing stool"],
    "fever": ["elevated temperature", "febrile", "pyrexia"],
    "fatigue": ["tiredness", "exhaustion", "lethargy"],
    "dizziness": ["lightheadedness", "vertigo", "unsteadiness"],
    # Procedures and labs
    "blood test": ["blood work", "lab test", "laboratory test"],
    "ct scan": ["cat scan", "computed tomography"],
    "mri": ["magnetic resonance imaging"],
    "hba1c": ["hemoglobin a1c", "glycated hemoglobin", "a1c"],
    "a1c": ["hba1c", "hemoglobin a1c"],
    "glucose": ["blood sugar", "blood glucose"],
    "cholesterol": ["lipid panel", "lipids"],
    # Abbreviations
    "htn": ["hypertension", "high blood pressure"],
    "dm": ["diabetes mellitus", "diabetes"],
}

STOP_WORDS: frozenset[str] = frozenset(
    {
        "a",
        "an",
        "and",
        "are",
        "as",
        "at",
        "be",
        "been",
        "by",
        "did",
        "do",
        "does",
        "for",
        "from",
        "had",
        "has",
        "have",
        "he",
        "her",
        "his",
        "how",
        "i",
        "if",
        "in",
        "is",
        "it",
        "its",
        "me",
        "my",
        "of",
        "on",
        "or",
        "our",
        "patient",
        "patients",
        "she",
        "so",
        "than",
        "that",
        "the",
        "their",
        "them",
        "then",
        "there",
        "these",
        "they",
        "this",
        "to",
        "up",
        "was",
        "we",
        "were",
        "what",
        "when",
        "where",
        "which",
        "while",
        "who",
        "why",
        "will",
        "with",
        "would",
        "you",
        "your",
    }
)


# ============================================
# Vocabulary
# ============================================


def _freeze_lists(mapping: dict[str, list[str]]) -> Mapping[str, tuple[str, ...]]:
    return MappingProxyType({k: tuple(v) for k, v in mapping.items()})


@dataclass(frozen=True)
class Vocabulary:
    """Read-only bundle of every dictionary the query parsers consult."""

    intent_keywords: Mapping[str, tuple[tuple[tuple[str, ...], float], ...]]
    intent_phrase_patterns: tuple[tuple[str, str, float], ...]
    intent_artifact_types: Mapping[str, tuple[str, ...] | None]
    medications: tuple[str, ...]
    conditions: tuple[str, ...]
    symptoms: tuple[str, ...]
    person_titles: tuple[str, ...]
    abbreviations: Mapping[str, str]
    synonyms: Mapping[str, tuple[str, ...]]
    stop_words: frozenset[str]


@lru_cache(maxsize=1)
def get_vocabulary() -> Vocabulary:
    """Build the default vocabulary once per process."""
    return Vocabulary(
        intent_keywords=MappingProxyType(
            {intent: tuple(groups) for intent, groups in INTENT_KEYWORDS.items()}
        ),
        intent_phrase_patterns=tuple(INTENT_PHRASE_PATTERNS),
        intent_artifact_types=MappingProxyType(
            {
                intent: tuple(types) if types is not None else None
                for intent, types in INTENT_ARTIFACT_TYPES.items()
            }
        ),
        medications=tuple(dict.fromkeys(MEDICATION_TERMS)),
        conditions=tuple(dict.fromkeys(CONDITION_TERMS)),
        symptoms=tuple(dict.fromkeys(SYMPTOM_TERMS)),
        person_titles=tuple(PERSON_TITLES),
        abbreviations=MappingProxyType(dict(MEDICAL_ABBREVIATIONS)),
        synonyms=_freeze_lists(MEDICAL_SYNONYMS),
        stop_words=STOP_WORDS,
    )
