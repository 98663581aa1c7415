"""
Interpretation Rule Engine - matches laboratory results against analyst rules
Each match becomes an applied interpretation keyed by (rule, result); storing
is insert-if-absent, so evaluating a sample again never duplicates a match.
"""

import logging
from typing import Any, Dict, List, Optional

import pydantic

from ..api.schemas import RuleCreate
from ..core.exceptions import NotFoundError, ValidationError
from .comparators import evaluate
from .records import (
    AppliedInterpretationRecord, InterpretationCandidate, ResultRecord,
    RuleRecord, SampleContext,
)
from .store import LabStore

logger = logging.getLogger(__name__)

MISSING = "N/A"


def _norm(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip().casefold()


def scope_matches(rule: RuleRecord, context: SampleContext, result: ResultRecord) -> bool:
    """Area and analyte must agree; species and next crop are wildcards when unset"""
    if _norm(rule.area) != _norm(result.area):
        return False
    if _norm(rule.analyte) != _norm(result.analyte):
        return False
    if rule.species is not None and _norm(rule.species) != _norm(context.sample.species):
        return False
    if rule.crop_next is not None and _norm(rule.crop_next) != _norm(context.sample.next_crop):
        return False
    return True


def _display(value: Any) -> str:
    if value is None or value == "":
        return MISSING
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    return str(value)


def render_message(template: str, context: SampleContext, result: ResultRecord) -> str:
    """Fill {placeholders} from the sample and result"""
    replacements = {
        "{species}": context.sample.species,
        "{analyte}": result.analyte,
        "{value}": result.value,
        "{flag}": result.result_flag,
        "{units}": result.units,
        "{area}": result.area,
        "{crop_next}": context.sample.next_crop,
        "{variety}": context.sample.variety,
        "{sample_code}": context.sample.code,
    }
    message = template
    for placeholder, value in replacements.items():
        message = message.replace(placeholder, _display(value))
    return message


class InterpretationEngine:
    """Evaluates interpretation rules and records the matches"""

    def __init__(self, store: LabStore):
        self.store = store

    def get_rules(self, area: str = None, active: bool = None) -> List[RuleRecord]:
        return self.store.list_rules(area=area, active=active)

    def create_rule(self, data: Dict[str, Any]) -> RuleRecord:
        try:
            definition = RuleCreate.model_validate(data)
        except pydantic.ValidationError as e:
            errors = [
                {"field": ".".join(str(p) for p in err["loc"]), "message": err["msg"]}
                for err in e.errors()
            ]
            raise ValidationError("Invalid interpretation rule", errors=errors) from e

        rule = self.store.create_rule(**definition.model_dump())
        logger.info(f"Created interpretation rule {rule.id} ({rule.area}/{rule.analyte} {rule.comparator.value})")
        return rule

    def deactivate_rule(self, rule_id: int) -> RuleRecord:
        rule = self.store.set_rule_active(rule_id, False)
        if rule is None:
            raise NotFoundError("Interpretation rule", rule_id)
        logger.info(f"Deactivated interpretation rule {rule_id}")
        return rule

    def get_applied_interpretations(self, sample_id: int) -> List[AppliedInterpretationRecord]:
        if self.store.get_sample(sample_id) is None:
            raise NotFoundError("Sample", sample_id)
        return self.store.list_applied_interpretations(sample_id)

    def find_matches(self, context: SampleContext, rules: List[RuleRecord]) -> List[InterpretationCandidate]:
        """Pure matching step: every (rule, result) pair that scopes and compares true"""
        candidates = []
        for rule in rules:
            if not rule.active:
                continue
            for result in context.results:
                if not scope_matches(rule, context, result):
                    continue
                if not evaluate(rule.comparator, rule.threshold, result.value, result.result_flag):
                    logger.debug(f"Rule {rule.id} did not match result {result.id}")
                    continue
                candidates.append(InterpretationCandidate(
                    sample_id=context.sample.id,
                    rule_id=rule.id,
                    result_id=result.id,
                    message=render_message(rule.message, context, result),
                    severity=rule.severity,
                    observed_value=None if result.value is None else _display(result.value),
                ))
        return candidates

    def evaluate_and_apply_rules(self, sample_id: int) -> List[AppliedInterpretationRecord]:
        """Apply every active rule to the sample and return its full interpretation set.

        Raises NotFoundError for an unknown sample. Storage failures propagate
        and nothing from this call is kept.
        """
        context = self.store.load_sample_context(sample_id)
        if context is None:
            raise NotFoundError("Sample", sample_id)

        rules = self.store.list_rules(active=True)
        candidates = self.find_matches(context, rules)
        inserted = self.store.apply_interpretations(candidates)

        logger.info(
            f"Evaluated {len(rules)} rules against {len(context.results)} results of sample "
            f"{sample_id}: {len(candidates)} matches, {inserted} new"
        )
        return self.store.list_applied_interpretations(sample_id)
