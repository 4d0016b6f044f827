"""
Aggregation rules: which reducer collapses a measure along a dimension.

The rule map attached to a cube is `measure id -> {dimension id -> rule}`.
A published rule map is never mutated; the helpers below return new outer
mappings and copy only the inner mappings they change.
"""

from enum import Enum
from typing import Any, Dict, Iterable, Mapping, Optional

from flatcube.errors import InvalidRuleError


class AggregationRule(Enum):
    """Reducers available when drilling up."""
    SUM = "sum"
    AVERAGE = "average"
    HIGHEST = "highest"
    LOWEST = "lowest"
    FIRST = "first"
    LAST = "last"


RuleMap = Dict[str, Dict[str, Optional[AggregationRule]]]


def coerce_rule(rule: Any) -> Optional[AggregationRule]:
    """Accept a rule, its string value, or None."""
    if rule is None or isinstance(rule, AggregationRule):
        return rule
    try:
        return AggregationRule(rule)
    except ValueError as e:
        raise InvalidRuleError(f"Unknown aggregation rule: {rule!r}") from e


def measure_rules(rules: Optional[Mapping[str, Any]],
                  dimension_ids: Iterable[str]) -> Dict[str, Optional[AggregationRule]]:
    """
    Build the rule entry of one measure: exactly one rule per dimension.

    Rules given for dimensions that are not listed are ignored; listed
    dimensions without a rule map to None.
    """
    rules = rules or {}
    return {dim_id: coerce_rule(rules.get(dim_id)) for dim_id in dimension_ids}


def with_dimension(rule_map: RuleMap, dimension_id: str,
                   rules_by_measure: Mapping[str, Any]) -> RuleMap:
    """Return a rule map where every measure has an entry for `dimension_id`."""
    return {
        measure_id: {**rules, dimension_id: coerce_rule(rules_by_measure.get(measure_id))}
        for measure_id, rules in rule_map.items()
    }


def without_dimension(rule_map: RuleMap, dimension_id: str) -> RuleMap:
    """Return a rule map with the entries of `dimension_id` pruned."""
    return {
        measure_id: {dim_id: rule for dim_id, rule in rules.items() if dim_id != dimension_id}
        for measure_id, rules in rule_map.items()
    }


def with_measure(rule_map: RuleMap, measure_id: str,
                 rules: Dict[str, Optional[AggregationRule]]) -> RuleMap:
    return {**rule_map, measure_id: rules}


def renamed_measure(rule_map: RuleMap, old_id: str, new_id: str) -> RuleMap:
    # Inner mappings are shared, only the key changes.
    return {(new_id if m == old_id else m): rules for m, rules in rule_map.items()}


def without_measure(rule_map: RuleMap, measure_id: str) -> RuleMap:
    return {m: rules for m, rules in rule_map.items() if m != measure_id}


def rules_to_dict(rule_map: RuleMap) -> Dict[str, Dict[str, Optional[str]]]:
    """Serialize a rule map to plain strings."""
    return {
        measure_id: {dim_id: rule.value if rule else None for dim_id, rule in rules.items()}
        for measure_id, rules in rule_map.items()
    }


def rules_from_dict(data: Mapping[str, Mapping[str, Optional[str]]]) -> RuleMap:
    return {
        measure_id: {dim_id: coerce_rule(rule) for dim_id, rule in rules.items()}
        for measure_id, rules in data.items()
    }
