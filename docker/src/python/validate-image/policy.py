"""Admission policy for Pods.

A rule is a named callable that inspects a single container and returns
either None (the container passes) or a message describing the violation.
A Policy applies an ordered set of rules to every container of a Pod and
produces a verdict.
"""

import logging
import types

from dataclasses import dataclass
from typing import Callable

from exc import ConfigurationError
from models import Allowed, Container, Denied, Pod, Violation

LOG = logging.getLogger(__name__)

ALLOWED_REASON = "image name is defined"
IMAGE_NOT_DEFINED = "image name is not defined for container"

Rule = Callable[[Container], str | None]


def image_defined(container: Container) -> str | None:
    # Only the empty string counts; whitespace is a (bad, but defined) image.
    if container.image == "":
        return IMAGE_NOT_DEFINED
    return None


RULES: types.MappingProxyType = types.MappingProxyType(
    {
        "image-defined": image_defined,
    }
)


def parse_rule_names(value) -> list[str]:
    """Accepts either a comma separated string or a list of names."""
    if isinstance(value, str):
        value = value.split(",")
    elif not isinstance(value, (list, tuple)):
        raise ConfigurationError(
            f"rules must be a comma separated string or a list, not {value!r}"
        )

    names = []
    for name in value:
        if not isinstance(name, str):
            raise ConfigurationError(f"rule names must be strings, not {name!r}")
        if name.strip():
            names.append(name.strip())
    return names


@dataclass(frozen=True)
class Policy:
    rules: tuple[tuple[str, Rule], ...]

    @classmethod
    def from_names(cls, names: str | list[str], registry=RULES) -> "Policy":
        names = parse_rule_names(names)
        if not names:
            raise ConfigurationError("no admission rules enabled")

        unknown = [name for name in names if name not in registry]
        if unknown:
            raise ConfigurationError(f"unknown admission rules: {', '.join(unknown)}")

        # dict.fromkeys drops duplicates but keeps the configured order
        return cls(rules=tuple((name, registry[name]) for name in dict.fromkeys(names)))

    @property
    def names(self) -> list[str]:
        return [name for name, _ in self.rules]

    def check_container(self, index: int, container: Container) -> list[Violation]:
        violations = []
        for name, rule in self.rules:
            message = rule(container)
            if message is not None:
                violations.append(
                    Violation(
                        rule=name,
                        message=message,
                        index=index,
                        container=container.name,
                    )
                )
        return violations

    def evaluate(self, pod: Pod) -> Allowed | Denied:
        """Check containers in order, stopping at the first one that fails.

        The denial reason is built from rule messages only, so it does not
        vary with the position or name of the offending container.
        """
        for index, container in enumerate(pod.spec.containers):
            violations = self.check_container(index, container)
            if violations:
                LOG.debug(
                    "container %d (%s) failed rules: %s",
                    index,
                    container.name,
                    ", ".join(v.rule for v in violations),
                )
                return Denied(
                    reason="; ".join(dict.fromkeys(v.message for v in violations)),
                    violations=tuple(violations),
                )

        return Allowed(reason=ALLOWED_REASON)


DEFAULT_POLICY = Policy.from_names(["image-defined"])


def validate_pod(pod: Pod, policy: Policy = DEFAULT_POLICY) -> Allowed | Denied:
    return policy.evaluate(pod)
