"""
Example interpretation rules for a fresh installation
"""

import logging
from typing import Any, Dict, List

from .interpretation_engine import InterpretationEngine
from .records import RuleRecord

logger = logging.getLogger(__name__)

EXAMPLE_RULES: List[Dict[str, Any]] = [
    # Nematology
    {
        "area": "nematology",
        "analyte": "Meloidogyne",
        "comparator": "gt",
        "threshold": {"value": 100},
        "message": "High population of root-knot nematodes ({analyte}): {value} individuals. "
                   "Rotate with non-host crops and consider nematicide treatment.",
        "severity": "high",
    },
    {
        "area": "nematology",
        "analyte": "Meloidogyne",
        "comparator": "between",
        "threshold": {"min": 50, "max": 100},
        "message": "Moderate population of {analyte}: {value} individuals. Monitor crop development.",
        "severity": "medium",
    },
    {
        "area": "nematology",
        "analyte": "Heterodera",
        "comparator": "gt",
        "threshold": {"value": 30},
        "message": "Significant presence of cyst nematodes ({analyte}): {value} cysts/100g of soil.",
        "severity": "high",
    },
    {
        "area": "nematology",
        "analyte": "Xiphinema",
        "comparator": "gte",
        "threshold": {"value": 1},
        "species": "Vitis vinifera",
        "message": "{analyte} detected in {species}. Vector of grapevine fanleaf virus.",
        "severity": "critical",
    },
    # Virology
    {
        "area": "virology",
        "analyte": "PNRSV",
        "comparator": "eq",
        "threshold": {"flag": "positive"},
        "message": "Positive detection of {analyte}. Apply quarantine measures.",
        "severity": "high",
    },
    # Phytopathology
    {
        "area": "phytopathology",
        "analyte": "Fusarium",
        "comparator": "gt",
        "threshold": {"value": 1000},
        "message": "High load of {analyte} ({value} CFU/g). Risk of vascular wilt.",
        "severity": "high",
    },
    {
        "area": "phytopathology",
        "analyte": "Botrytis",
        "comparator": "in",
        "threshold": {"values": ["positive", "present"]},
        "message": "{analyte} confirmed. Monitor humidity conditions.",
        "severity": "medium",
    },
]


def seed_example_rules(engine: InterpretationEngine, skip_existing: bool = True) -> List[RuleRecord]:
    """Create the example rules, skipping (area, analyte, comparator) combinations already present"""
    existing = {
        (rule.area, rule.analyte, rule.comparator.value) for rule in engine.get_rules()
    } if skip_existing else set()

    created = []
    for definition in EXAMPLE_RULES:
        key = (definition["area"], definition["analyte"], definition["comparator"])
        if key in existing:
            continue
        created.append(engine.create_rule(definition))

    logger.info(f"Seeded {len(created)} example interpretation rules")
    return created
