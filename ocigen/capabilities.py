"""Process capability settings of a configuration.

The methods here are mixed into a generator class that provides the
``config`` mapping, the ``host_specific`` flag and the ``_init_config_*``
section initialisers.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any

# Linux capabilities, in kernel numbering order.
_CAPABILITY_NAMES = (
    "chown",
    "dac_override",
    "dac_read_search",
    "fowner",
    "fsetid",
    "kill",
    "setgid",
    "setuid",
    "setpcap",
    "linux_immutable",
    "net_bind_service",
    "net_broadcast",
    "net_admin",
    "net_raw",
    "ipc_lock",
    "ipc_owner",
    "sys_module",
    "sys_rawio",
    "sys_chroot",
    "sys_ptrace",
    "sys_pacct",
    "sys_admin",
    "sys_boot",
    "sys_nice",
    "sys_resource",
    "sys_time",
    "sys_tty_config",
    "mknod",
    "lease",
    "audit_write",
    "audit_control",
    "setfcap",
    "mac_override",
    "mac_admin",
    "syslog",
    "wake_alarm",
    "block_suspend",
    "audit_read",
)

_CAPABILITIES = tuple(f"CAP_{name.upper()}" for name in _CAPABILITY_NAMES)
_CAPABILITY_NUMBERS = {name: number for number, name in enumerate(_CAPABILITIES)}

_CAP_LAST_CAP_PATH = "/proc/sys/kernel/cap_last_cap"

_CAPABILITY_SETS = ("bounding", "effective", "inheritable", "permitted", "ambient")


def last_cap() -> int:
    """Return the highest capability number the running kernel supports.

    Falls back to the highest known capability when the kernel does not say.
    """
    try:
        with open(_CAP_LAST_CAP_PATH, encoding="ascii") as handle:
            return int(handle.read().strip())
    except (OSError, ValueError):
        return len(_CAPABILITIES) - 1


def cap_valid(capability: str, host_specific: bool) -> None:
    """Raise ValueError unless ``capability`` names a known capability.

    With ``host_specific`` the capability must also be supported by the
    running kernel.
    """
    if not capability.startswith("CAP_"):
        raise ValueError(f"capability {capability} must start with CAP_")
    number = _CAPABILITY_NUMBERS.get(capability)
    if number is None:
        raise ValueError(f"invalid capability: {capability}")
    if host_specific and number > last_cap():
        raise ValueError(f"{capability} is not supported on the current host")


def _swap_remove(entries: list[str], wanted: str) -> None:
    """Remove every entry matching ``wanted`` case-insensitively; order is not kept."""
    index = 0
    while index < len(entries):
        if entries[index].upper() == wanted:
            entries[index] = entries[-1]
            entries.pop()
        else:
            index += 1


class CapabilitiesMixin:
    """Edits the five capability sets of ``process.capabilities``."""

    config: MutableMapping[str, Any] | None
    host_specific: bool

    def _existing_capabilities(self) -> dict[str, Any] | None:
        if self.config is None:
            return None
        process = self.config.get("process")
        if process is None:
            return None
        return process.get("capabilities")

    def _add_to_sets(self, c: str, set_names: tuple[str, ...]) -> None:
        cp = c.upper()
        cap_valid(cp, self.host_specific)
        caps = self._init_config_process_capabilities()
        for set_name in set_names:
            entries = caps.get(set_name)
            if entries is None:
                entries = caps[set_name] = []
            if not any(entry.upper() == cp for entry in entries):
                entries.append(cp)

    def _drop_from_sets(self, c: str, set_names: tuple[str, ...]) -> None:
        caps = self._existing_capabilities()
        if caps is None:
            return
        cp = c.upper()
        for set_name in set_names:
            entries = caps.get(set_name)
            if entries:
                _swap_remove(entries, cp)
        cap_valid(cp, False)

    def setup_privileged(self, privileged: bool) -> None:
        """Grant every capability and drop confinement when ``privileged``."""
        if not privileged:
            return
        limit = last_cap() if self.host_specific else None
        final_caps = [
            name
            for number, name in enumerate(_CAPABILITIES)
            if limit is None or number <= limit
        ]
        linux = self._init_config_linux()
        self._init_config_process_capabilities()
        self.clear_process_capabilities()
        caps = self._existing_capabilities()
        for set_name in _CAPABILITY_SETS:
            caps[set_name].extend(final_caps)
        process = self.config["process"]
        process.pop("selinuxLabel", None)
        process.pop("apparmorProfile", None)
        linux.pop("seccomp", None)

    def clear_process_capabilities(self) -> None:
        caps = self._existing_capabilities()
        if caps is None:
            return
        for set_name in _CAPABILITY_SETS:
            caps[set_name] = []

    def add_process_capability(self, c: str) -> None:
        """Add a capability to all five capability sets."""
        self._add_to_sets(c, ("ambient", "bounding", "effective", "inheritable", "permitted"))

    def add_process_capability_ambient(self, c: str) -> None:
        self._add_to_sets(c, ("ambient",))

    def add_process_capability_bounding(self, c: str) -> None:
        self._add_to_sets(c, ("bounding",))

    def add_process_capability_effective(self, c: str) -> None:
        self._add_to_sets(c, ("effective",))

    def add_process_capability_inheritable(self, c: str) -> None:
        self._add_to_sets(c, ("inheritable",))

    def add_process_capability_permitted(self, c: str) -> None:
        self._add_to_sets(c, ("permitted",))

    def drop_process_capability(self, c: str) -> None:
        """Remove a capability from all five sets; raise if it is not a valid name."""
        self._drop_from_sets(c, ("ambient", "bounding", "effective", "inheritable", "permitted"))

    def drop_process_capability_ambient(self, c: str) -> None:
        self._drop_from_sets(c, ("ambient",))

    def drop_process_capability_bounding(self, c: str) -> None:
        self._drop_from_sets(c, ("bounding",))

    def drop_process_capability_effective(self, c: str) -> None:
        self._drop_from_sets(c, ("effective",))

    def drop_process_capability_inheritable(self, c: str) -> None:
        self._drop_from_sets(c, ("inheritable",))

    def drop_process_capability_permitted(self, c: str) -> None:
        self._drop_from_sets(c, ("permitted",))