"""Seccomp rule editing for OCI runtime configurations.

A seccomp configuration is the JSON-shaped mapping found under
``linux.seccomp`` in a runtime spec: ``defaultAction``, ``architectures``
and ``syscalls``.  Each syscall rule is a mapping with ``names``,
``action`` and ``args``.  A rule whose ``args`` key is missing or ``None``
is treated as having no argument list at all, which is distinct from an
empty list.
"""

from __future__ import annotations

import enum
import re
from collections.abc import MutableMapping, Sequence
from dataclasses import dataclass
from typing import Any

ACT_KILL = "SCMP_ACT_KILL"
ACT_TRAP = "SCMP_ACT_TRAP"
ACT_ERRNO = "SCMP_ACT_ERRNO"
ACT_TRACE = "SCMP_ACT_TRACE"
ACT_ALLOW = "SCMP_ACT_ALLOW"

OP_NOT_EQUAL = "SCMP_CMP_NE"
OP_LESS_THAN = "SCMP_CMP_LT"
OP_LESS_EQUAL = "SCMP_CMP_LE"
OP_EQUAL_TO = "SCMP_CMP_EQ"
OP_GREATER_EQUAL = "SCMP_CMP_GE"
OP_GREATER_THAN = "SCMP_CMP_GT"
OP_MASKED_EQUAL = "SCMP_CMP_MASKED_EQ"

ARCH_X86 = "SCMP_ARCH_X86"
ARCH_X86_64 = "SCMP_ARCH_X86_64"
ARCH_X32 = "SCMP_ARCH_X32"
ARCH_ARM = "SCMP_ARCH_ARM"
ARCH_AARCH64 = "SCMP_ARCH_AARCH64"
ARCH_MIPS = "SCMP_ARCH_MIPS"
ARCH_MIPS64 = "SCMP_ARCH_MIPS64"
ARCH_MIPS64N32 = "SCMP_ARCH_MIPS64N32"
ARCH_MIPSEL = "SCMP_ARCH_MIPSEL"
ARCH_MIPSEL64 = "SCMP_ARCH_MIPSEL64"
ARCH_MIPSEL64N32 = "SCMP_ARCH_MIPSEL64N32"
ARCH_PPC = "SCMP_ARCH_PPC"
ARCH_PPC64 = "SCMP_ARCH_PPC64"
ARCH_PPC64LE = "SCMP_ARCH_PPC64LE"
ARCH_S390 = "SCMP_ARCH_S390"
ARCH_S390X = "SCMP_ARCH_S390X"
ARCH_PARISC = "SCMP_ARCH_PARISC"
ARCH_PARISC64 = "SCMP_ARCH_PARISC64"

_ACTIONS = {
    "allow": ACT_ALLOW,
    "errno": ACT_ERRNO,
    "kill": ACT_KILL,
    "trace": ACT_TRACE,
    "trap": ACT_TRAP,
}

_OPERATORS = {
    "NE": OP_NOT_EQUAL,
    "LT": OP_LESS_THAN,
    "LE": OP_LESS_EQUAL,
    "EQ": OP_EQUAL_TO,
    "GE": OP_GREATER_EQUAL,
    "GT": OP_GREATER_THAN,
    "ME": OP_MASKED_EQUAL,
}

_ARCHES = {
    "x86": ARCH_X86,
    "amd64": ARCH_X86_64,
    "x32": ARCH_X32,
    "arm": ARCH_ARM,
    "arm64": ARCH_AARCH64,
    "mips": ARCH_MIPS,
    "mips64": ARCH_MIPS64,
    "mips64n32": ARCH_MIPS64N32,
    "mipsel": ARCH_MIPSEL,
    "mipsel64": ARCH_MIPSEL64,
    "mipsel64n32": ARCH_MIPSEL64N32,
    "parisc": ARCH_PARISC,
    "parisc64": ARCH_PARISC64,
    "ppc": ARCH_PPC,
    "ppc64": ARCH_PPC64,
    "ppc64le": ARCH_PPC64LE,
    "s390": ARCH_S390,
    "s390x": ARCH_S390X,
}

_UINT64_MAX = (1 << 64) - 1
_DIGITS = re.compile(r"[0-9]+")
_NIL_CONFIG_MESSAGE = "Cannot remove action from nil Seccomp pointer"

Seccomp = MutableMapping[str, Any]
Syscall = MutableMapping[str, Any]


@dataclass
class SyscallOpts:
    """Options describing one syscall rule to add."""

    action: str = ""
    syscall: str = ""
    index: str = ""
    value: str = ""
    value_two: str = ""
    operator: str = ""

    def args_are_empty(self) -> bool:
        """Return True when no argument-condition field is set."""
        return not (self.index or self.value or self.value_two or self.operator)


class _Decision(enum.Enum):
    NOTHING = "nothing"
    OVERWRITE = "overwrite"
    APPEND = "append"


def _parse_action(action: str) -> str:
    try:
        return _ACTIONS[action]
    except KeyError:
        raise ValueError(f"unrecognized action: {action}") from None


def _parse_operator(operator: str) -> str:
    try:
        return _OPERATORS[operator]
    except KeyError:
        raise ValueError(f"unrecognized operator: {operator}") from None


def _parse_arch(arch: str) -> str:
    try:
        return _ARCHES[arch]
    except KeyError:
        raise ValueError(f"unrecognized architecture: {arch}") from None


def _parse_uint(text: str) -> int:
    if not _DIGITS.fullmatch(text):
        raise ValueError(f'parsing "{text}": invalid syntax')
    number = int(text)
    if number > _UINT64_MAX:
        raise ValueError(f'parsing "{text}": value out of range')
    return number


def _parse_arguments(delim_args: Sequence[str]) -> list[dict[str, Any]]:
    """Turn ``[name]`` or ``[name, index, value, value_two, op]`` into args."""
    if len(delim_args) == 1:
        return []
    if len(delim_args) == 5:
        _, index, value, value_two, operator = delim_args
        arg = {
            "index": _parse_uint(index),
            "value": _parse_uint(value),
            "valueTwo": _parse_uint(value_two),
            "op": _parse_operator(operator),
        }
        return [arg]
    raise ValueError(
        f"incorrect number of arguments passed with syscall: {len(delim_args)}"
    )


def _args_key(syscall: Syscall) -> tuple | None:
    args = syscall.get("args")
    if args is None:
        return None
    return tuple(
        (a.get("index", 0), a.get("value", 0), a.get("valueTwo", 0), a.get("op", ""))
        for a in args
    )


def _same_name(a: Syscall, b: Syscall) -> bool:
    return a.get("names") == b.get("names")


def _same_action(a: Syscall, b: Syscall) -> bool:
    return a.get("action", "") == b.get("action", "")


def _same_args(a: Syscall, b: Syscall) -> bool:
    return _args_key(a) == _args_key(b)


def _has_arguments(syscall: Syscall) -> bool:
    return syscall.get("args") is not None


def _extra_fields(syscall: Syscall) -> dict[str, Any]:
    return {
        key: value
        for key, value in syscall.items()
        if key not in ("names", "action", "args") and value is not None
    }


def _identical(a: Syscall, b: Syscall) -> bool:
    return (
        _same_name(a, b)
        and _same_action(a, b)
        and _same_args(a, b)
        and _extra_fields(a) == _extra_fields(b)
    )


def _decide_course_of_action(
    new_syscall: Syscall, syscalls: Sequence[Syscall]
) -> tuple[_Decision, int]:
    """Decide whether to append, overwrite an existing rule, or do nothing."""
    decisions: list[tuple[_Decision, int]] = []
    rule_exists = False

    for i, existing in enumerate(syscalls):
        if not _same_name(existing, new_syscall):
            continue
        rule_exists = True
        new_has = _has_arguments(new_syscall)
        old_has = _has_arguments(existing)

        if _identical(new_syscall, existing):
            decisions.append((_Decision.NOTHING, -1))

        if _same_action(new_syscall, existing):
            if new_has and old_has:
                decisions.append((_Decision.APPEND, -1))
            if new_has != old_has:
                if not new_has and old_has:
                    decisions.append((_Decision.OVERWRITE, i))
                else:
                    decisions.append((_Decision.NOTHING, -1))
        else:
            if new_has and old_has:
                if _same_args(new_syscall, existing):
                    decisions.append((_Decision.OVERWRITE, i))
                else:
                    decisions.append((_Decision.APPEND, -1))
            if new_has != old_has:
                decisions.append((_Decision.APPEND, -1))
            if not new_has and not old_has:
                decisions.append((_Decision.OVERWRITE, i))

    if not rule_exists:
        decisions.append((_Decision.APPEND, -1))

    for wanted in (_Decision.NOTHING, _Decision.OVERWRITE, _Decision.APPEND):
        for decision in decisions:
            if decision[0] is wanted:
                return decision

    raise ValueError(
        f"Trouble determining action: {[d.value for d, _ in decisions]}"
    )


def parse_syscall_flag(args: SyscallOpts, config: Seccomp) -> None:
    """Add or update a syscall rule in ``config`` as described by ``args``."""
    if args.index and args.value and args.value_two and args.operator:
        arguments = [
            args.action,
            args.syscall,
            args.index,
            args.value,
            args.value_two,
            args.operator,
        ]
    else:
        arguments = [args.action, args.syscall]

    # An unknown action is not an error here; it yields an empty action.
    action = _ACTIONS.get(arguments[0], "")
    if action == config.get("defaultAction", "") and args.args_are_empty():
        return

    new_syscall = {
        "names": [arguments[1]],
        "action": action,
        "args": _parse_arguments(arguments[1:]),
    }

    existing = config.get("syscalls") or []
    decision, index = _decide_course_of_action(new_syscall, existing)
    if decision is _Decision.APPEND:
        if config.get("syscalls") is None:
            config["syscalls"] = []
        config["syscalls"].append(new_syscall)
    elif decision is _Decision.OVERWRITE:
        config["syscalls"][index] = new_syscall


def parse_default_action(action: str, config: Seccomp) -> None:
    """Set the default action and drop every rule already using it."""
    if not action:
        return
    default_action = _parse_action(action)
    config["defaultAction"] = default_action
    remove_all_matching_rules(config, default_action)


def parse_default_action_force(action: str, config: Seccomp) -> None:
    """Set the default action without touching the existing rules."""
    if not action:
        return
    config["defaultAction"] = _parse_action(action)


def parse_architecture_flag(architecture_arg: str, config: Seccomp) -> None:
    """Add the named architecture to ``config`` unless already present."""
    arch = _parse_arch(architecture_arg)
    architectures = config.get("architectures")
    if architectures is None:
        architectures = config["architectures"] = []
    if arch not in architectures:
        architectures.append(arch)


def remove_action(arguments: str, config: Seccomp | None) -> None:
    """Remove the rules whose names equal the comma separated ``arguments``."""
    if config is None:
        raise ValueError(_NIL_CONFIG_MESSAGE)
    names = arguments.split(",")
    syscalls = config.get("syscalls")
    if not syscalls:
        return
    config["syscalls"] = [s for s in syscalls if s.get("names") != names]


def remove_all_seccomp_rules(config: Seccomp | None) -> None:
    """Remove every syscall rule."""
    if config is None:
        raise ValueError(_NIL_CONFIG_MESSAGE)
    config["syscalls"] = []


def remove_all_matching_rules(config: Seccomp | None, seccomp_action: str) -> None:
    """Remove the rules for every syscall name list that uses ``seccomp_action``."""
    if config is None:
        raise ValueError(_NIL_CONFIG_MESSAGE)
    for syscall in list(config.get("syscalls") or []):
        if syscall.get("action", "") == seccomp_action:
            remove_action(",".join(syscall.get("names") or []), config)