# herbchain/core/registry.py
"""
Rule Registry: the set of compliance rules, looked up by species.

Rules are configuration data. Edits replace the whole rule tuple so a reader
holding the previous tuple keeps a consistent view; no lock is needed for
lookups.
"""

import logging
from typing import Iterable, Tuple

from herbchain.errors import NotFoundError
from herbchain.models.rules import SmartContractRule, parse_rule

logger = logging.getLogger(__name__)

_TYPE_ORDER = {"geo_fence": 0, "seasonal": 1, "conservation": 2, "quality": 3}


def _sort_key(rule) -> tuple:
    return (_TYPE_ORDER[rule.type], rule.id)


class RuleRegistry:
    def __init__(self, rules: Iterable[SmartContractRule] = ()):
        self._rules: Tuple[SmartContractRule, ...] = ()
        for rule in rules:
            self._install(rule)

    @classmethod
    def from_documents(cls, docs: Iterable[dict]) -> "RuleRegistry":
        return cls(parse_rule(d) for d in docs)

    def _install(self, rule: SmartContractRule) -> None:
        kept = tuple(r for r in self._rules if r.id != rule.id)
        self._rules = tuple(sorted(kept + (rule,), key=_sort_key))

    def rules_for(self, species: str) -> Tuple[SmartContractRule, ...]:
        """Active rules for a species, ordered by rule type then id."""
        return tuple(r for r in self._rules if r.species == species and r.active)

    def all_rules(self) -> Tuple[SmartContractRule, ...]:
        return self._rules

    def get(self, rule_id: str) -> SmartContractRule:
        for rule in self._rules:
            if rule.id == rule_id:
                return rule
        raise NotFoundError(f"Rule {rule_id} not found")

    def register(self, rule: SmartContractRule) -> SmartContractRule:
        self._install(rule)
        logger.info("Rule %s registered for %s", rule.id, rule.species)
        return rule

    def revise(self, rule_id: str, **changes) -> SmartContractRule:
        """Re-validated copy of a rule with a partial edit applied; nothing is installed."""
        doc = self.get(rule_id).model_dump()
        doc.update(changes)
        doc["id"] = rule_id
        return parse_rule(doc)

    def update(self, rule_id: str, **changes) -> SmartContractRule:
        """Apply a partial edit (e.g. active=False) and re-validate the rule."""
        updated = self.revise(rule_id, **changes)
        self._install(updated)
        logger.info("Rule %s updated: %s", rule_id, sorted(changes))
        return updated

    def species(self) -> list[str]:
        return sorted({r.species for r in self._rules})
