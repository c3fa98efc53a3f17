# graph_transform/metadata.py
from __future__ import annotations

import logging
from typing import Optional, TypeVar

from graph_transform.contracts import (
    DirectionScoped,
    ExcludeRule,
    ExposeRule,
    MetadataRegistrationError,
    Strategy,
    TransformDirection,
    TransformRule,
    TypeRule,
)

logger = logging.getLogger(__name__)

RuleT = TypeVar("RuleT", TypeRule, ExposeRule, ExcludeRule)

ModelRules = dict[Optional[str], RuleT]


def matches_direction(rule: DirectionScoped, direction: TransformDirection) -> bool:
    options = rule.options
    if options.to_class_only and options.to_plain_only:
        return True
    if options.to_class_only:
        return direction.builds_instance
    if options.to_plain_only:
        return direction is TransformDirection.INSTANCE_TO_PLAIN
    return True


class MetadataRegistry:
    """Per-model field declarations with inheritance-aware lookup."""

    def __init__(self) -> None:
        self._type_rules: dict[type, ModelRules[TypeRule]] = {}
        self._expose_rules: dict[type, ModelRules[ExposeRule]] = {}
        self._exclude_rules: dict[type, ModelRules[ExcludeRule]] = {}
        self._transform_rules: dict[type, dict[str, list[TransformRule]]] = {}
        self._ancestors: dict[type, tuple[type, ...]] = {}

    # ------------------------------------------------------------------
    # Registration
    # ------------------------------------------------------------------

    def add_type_rule(self, rule: TypeRule) -> None:
        if not rule.field_name:
            raise MetadataRegistrationError(f"type rule on {rule.owner.__name__} needs a field name")
        self._put(self._type_rules, rule.owner, rule.field_name, rule)

    def add_expose_rule(self, rule: ExposeRule) -> None:
        self._put(self._expose_rules, rule.owner, rule.field_name, rule)

    def add_exclude_rule(self, rule: ExcludeRule) -> None:
        self._put(self._exclude_rules, rule.owner, rule.field_name, rule)

    def add_transform_rule(self, rule: TransformRule) -> None:
        if not rule.field_name:
            raise MetadataRegistrationError(f"transform rule on {rule.owner.__name__} needs a field name")
        if not callable(rule.transform_fn):
            raise MetadataRegistrationError(
                f"transform rule {rule.owner.__name__}.{rule.field_name} needs a callable"
            )
        by_field = self._transform_rules.setdefault(rule.owner, {})
        by_field.setdefault(rule.field_name, []).append(rule)

    def _put(self, store: dict[type, ModelRules[RuleT]], owner: type, field_name: Optional[str], rule: RuleT) -> None:
        model_rules = store.setdefault(owner, {})
        if field_name in model_rules:
            logger.debug("overwriting %s for %s.%s", type(rule).__name__, owner.__name__, field_name)
        model_rules[field_name] = rule

    # ------------------------------------------------------------------
    # Lookup
    # ------------------------------------------------------------------

    def find_type_rule(self, model: Optional[type], field_name: str) -> Optional[TypeRule]:
        return self._find(self._type_rules, model, field_name)

    def find_expose_rule(self, model: Optional[type], field_name: str) -> Optional[ExposeRule]:
        return self._find(self._expose_rules, model, field_name)

    def find_exclude_rule(self, model: Optional[type], field_name: str) -> Optional[ExcludeRule]:
        return self._find(self._exclude_rules, model, field_name)

    def find_expose_rule_by_renamed_name(self, model: Optional[type], renamed: str) -> Optional[ExposeRule]:
        for rule in self.get_expose_rules(model):
            if rule.options.name == renamed:
                return rule
        return None

    def find_transform_rules(
        self, model: Optional[type], field_name: str, direction: TransformDirection
    ) -> list[TransformRule]:
        if model is None:
            return []
        own = list(self._transform_rules.get(model, {}).get(field_name, ()))
        inherited: list[TransformRule] = []
        for ancestor in self.get_ancestors(model):
            inherited.extend(self._transform_rules.get(ancestor, {}).get(field_name, ()))
        ordered = inherited[::-1] + own[::-1]
        return [rule for rule in ordered if matches_direction(rule, direction)]

    def get_strategy(self, model: Optional[type]) -> Strategy:
        if model is None:
            return Strategy.NONE
        exclude = self._exclude_rules.get(model, {}).get(None)
        expose = self._expose_rules.get(model, {}).get(None)
        if (exclude is None) == (expose is None):
            return Strategy.NONE
        return Strategy.EXCLUDE_ALL if exclude is not None else Strategy.EXPOSE_ALL

    def get_expose_rules(self, model: Optional[type]) -> list[ExposeRule]:
        return self._collect(self._expose_rules, model)

    def get_exclude_rules(self, model: Optional[type]) -> list[ExcludeRule]:
        return self._collect(self._exclude_rules, model)

    def get_exposed_fields(self, model: Optional[type], direction: TransformDirection) -> list[str]:
        return [
            rule.field_name
            for rule in self.get_expose_rules(model)
            if rule.field_name is not None and matches_direction(rule, direction)
        ]

    def get_excluded_fields(self, model: Optional[type], direction: TransformDirection) -> list[str]:
        return [
            rule.field_name
            for rule in self.get_exclude_rules(model)
            if rule.field_name is not None and matches_direction(rule, direction)
        ]

    def get_ancestors(self, model: type) -> tuple[type, ...]:
        cached = self._ancestors.get(model)
        if cached is None:
            cached = tuple(base for base in model.__mro__[1:] if base is not object)
            self._ancestors[model] = cached
        return cached

    def clear(self) -> None:
        logger.debug("clearing metadata registry")
        self._type_rules.clear()
        self._expose_rules.clear()
        self._exclude_rules.clear()
        self._transform_rules.clear()
        self._ancestors.clear()

    # ------------------------------------------------------------------
    # Internals
    # ------------------------------------------------------------------

    def _find(self, store: dict[type, ModelRules[RuleT]], model: Optional[type], field_name: str) -> Optional[RuleT]:
        if model is None:
            return None
        for owner in (model, *self.get_ancestors(model)):
            rule = store.get(owner, {}).get(field_name)
            if rule is not None:
                return rule
        return None

    def _collect(self, store: dict[type, ModelRules[RuleT]], model: Optional[type]) -> list[RuleT]:
        if model is None:
            return []
        inherited: list[RuleT] = []
        for ancestor in self.get_ancestors(model):
            inherited.extend(rule for key, rule in store.get(ancestor, {}).items() if key is not None)
        own = [rule for key, rule in store.get(model, {}).items() if key is not None]
        return inherited + own


default_registry = MetadataRegistry()


__all__ = ["MetadataRegistry", "default_registry", "matches_direction"]
