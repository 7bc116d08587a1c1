"""
Parser Constants.

Keyword lists and compiled patterns used by the item extractor and the
message intent heuristics.
"""

import re

# =============================================================================
# Prescription Keywords
# =============================================================================

# Regulated drugs and drug categories; substring match against item names
RX_KEYWORDS = (
    # Antibiotics
    "antibiotic",
    "amoxicillin",
    "azithromycin",
    "ciprofloxacin",
    "levofloxacin",
    "cefixime",
    "ofloxacin",
    "metronidazole",
    "doxycycline",
    # Steroids
    "steroid",
    "prednisolone",
    "dexamethasone",
    "betamethasone",
    # Diabetes
    "insulin",
    "metformin",
    "glimepiride",
    # Sedatives / sleep
    "sleeping",
    "alprazolam",
    "diazepam",
    "clonazepam",
    "zolpidem",
    # Opioid analgesics
    "tramadol",
    "codeine",
    "morphine",
    # Blood pressure
    "amlodipine",
    "losartan",
    "telmisartan",
    "atenolol",
    # Mental health
    "antidepressant",
    "sertraline",
    "fluoxetine",
    "escitalopram",
    # Drug schedules
    "schedule h",
    "schedule h1",
    "schedule x",
)


# =============================================================================
# Line Splitting / Cleanup
# =============================================================================

LINE_SPLIT_PATTERN = re.compile(r"[,;\n]")

LEADING_BULLET_PATTERN = re.compile(r"^[\s\-•*·→]+")
TRAILING_BULLET_PATTERN = re.compile(r"[\s\-•*·→]+$")
LEADING_NUMBERING_PATTERN = re.compile(r"^\d+[.):\s]+")

# Unit word left behind after an "x N" marker is removed, e.g. "500mg x 2 strips"
TRAILING_UNIT_PATTERN = re.compile(
    r"\s+(?:pcs?|pieces?|strips?|tablets?|tabs?|bottles?|units?|boxes?|packets?|packs?)$",
    re.IGNORECASE,
)

MULTISPACE_PATTERN = re.compile(r"\s{2,}")


# =============================================================================
# Quantity Patterns
# =============================================================================
# Tried in order; the first one whose number is a sane quantity wins.

QUANTITY_PATTERNS = (
    re.compile(r"[x×]\s*(\d+)", re.IGNORECASE),                # x10, × 10
    re.compile(r"(\d+)\s*(pcs?|pieces?)", re.IGNORECASE),       # 10 pcs
    re.compile(r"(\d+)\s*(strips?)", re.IGNORECASE),            # 2 strips
    re.compile(r"(\d+)\s*(tablets?|tabs?)", re.IGNORECASE),     # 10 tablets
    re.compile(r"(\d+)\s*(bottles?)", re.IGNORECASE),           # 1 bottle
    re.compile(r"(\d+)\s*(units?)", re.IGNORECASE),             # 5 units
    re.compile(r"(\d+)\s*(boxes?)", re.IGNORECASE),             # 2 boxes
    re.compile(r"(\d+)\s*(packets?|packs?)", re.IGNORECASE),    # 3 packets
    re.compile(r"[-–]\s*(\d+)"),                                # - 10
    re.compile(r"(\d+)\s*$"),                                   # trailing number
)

MIN_QUANTITY = 1
MAX_QUANTITY = 100


# =============================================================================
# Intent Heuristics
# =============================================================================

AFFIRMATION_TOKENS = frozenset({
    "yes", "y", "ok", "okay", "confirm", "same", "same address",
})

PAYMENT_ACK_TOKENS = frozenset({
    "paid", "payment done", "done", "completed",
})

# Six digit PIN code, a number before a comma, or a common address word
ADDRESS_PATTERN = re.compile(
    r"\d{6}|\d+.*,|flat|house|street|road|sector|block|near",
    re.IGNORECASE,
)

# Punctuation customers tack onto short replies ("Yes!", "paid.")
TRAILING_PUNCTUATION_PATTERN = re.compile(r"[\s!.,?]+$")
