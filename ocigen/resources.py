"""Linux resource, cgroup, sysctl and ID-mapping settings of a configuration.

These methods are meant to be mixed into a generator class that provides
the ``config`` mapping and the ``_init_config_*`` section initialisers.
"""

from __future__ import annotations

from collections.abc import MutableMapping
from typing import Any

_ROOT_PROPAGATIONS = frozenset(
    {
        "",
        "private",
        "rprivate",
        "slave",
        "rslave",
        "shared",
        "rshared",
        "unbindable",
        "runbindable",
    }
)


def _add_or_replace_throttle_device(
    devices: list[dict[str, Any]], major: int, minor: int, rate: int
) -> None:
    for device in devices:
        if device.get("major") == major and device.get("minor") == minor:
            device["rate"] = rate
            return
    devices.append({"major": major, "minor": minor, "rate": rate})


def _drop_throttle_device(devices: list[dict[str, Any]], major: int, minor: int) -> None:
    for index, device in enumerate(devices):
        if device.get("major") == major and device.get("minor") == minor:
            del devices[index]
            return


def _set_weight_device(
    devices: list[dict[str, Any]], major: int, minor: int, key: str, weight: int
) -> None:
    for device in devices:
        if device.get("major") == major and device.get("minor") == minor:
            device[key] = weight
            return
    devices.append({"major": major, "minor": minor, key: weight})


def _drop_weight_device(
    devices: list[dict[str, Any]], major: int, minor: int, key: str, keep: str
) -> None:
    """Remove ``key`` from a weight device; drop the entry if ``keep`` is unset."""
    for index, device in enumerate(devices):
        if device.get("major") == major and device.get("minor") == minor:
            if device.get(keep) is not None:
                devices[index] = {"major": major, "minor": minor, keep: device[keep]}
            else:
                del devices[index]
            return


class ResourcesMixin:
    """Edits ``linux`` resources, cgroups, sysctls and ID mappings."""

    config: MutableMapping[str, Any] | None

    def _linux_path(self, *keys: str) -> Any:
        """Return the value at ``linux.<keys...>``, or None when any part is missing."""
        node: Any = self.config
        for key in ("linux", *keys):
            if node is None:
                return None
            node = node.get(key)
        return node

    def _block_io_list(self, key: str) -> list[dict[str, Any]]:
        block_io = self._init_config_linux_resources_block_io()
        value = block_io.get(key)
        if value is None:
            value = block_io[key] = []
        return value

    def _existing_block_io_list(self, key: str) -> list[dict[str, Any]] | None:
        block_io = self._linux_path("resources", "blockIO")
        if block_io is None:
            return None
        return block_io.get(key)

    # -- linux basics ---------------------------------------------------

    def init_config_linux_resources_cpu(self) -> None:
        """Make sure ``linux.resources.cpu`` exists."""
        self._init_config_linux_resources_cpu()

    def set_linux_cgroups_path(self, path: str) -> None:
        self._init_config_linux()["cgroupsPath"] = path

    def set_linux_intel_rdt_l3_cache_schema(self, schema: str) -> None:
        self._init_config_linux_intel_rdt()["l3CacheSchema"] = schema

    def set_linux_mount_label(self, label: str) -> None:
        self._init_config_linux()["mountLabel"] = label

    # -- block IO -------------------------------------------------------

    def set_linux_resources_block_io_leaf_weight(self, weight: int) -> None:
        self._init_config_linux_resources_block_io()["leafWeight"] = weight

    def add_linux_resources_block_io_leaf_weight_device(
        self, major: int, minor: int, weight: int
    ) -> None:
        _set_weight_device(self._block_io_list("weightDevice"), major, minor, "leafWeight", weight)

    def drop_linux_resources_block_io_leaf_weight_device(self, major: int, minor: int) -> None:
        devices = self._existing_block_io_list("weightDevice")
        if devices:
            _drop_weight_device(devices, major, minor, "leafWeight", "weight")

    def set_linux_resources_block_io_weight(self, weight: int) -> None:
        self._init_config_linux_resources_block_io()["weight"] = weight

    def add_linux_resources_block_io_weight_device(
        self, major: int, minor: int, weight: int
    ) -> None:
        _set_weight_device(self._block_io_list("weightDevice"), major, minor, "weight", weight)

    def drop_linux_resources_block_io_weight_device(self, major: int, minor: int) -> None:
        devices = self._existing_block_io_list("weightDevice")
        if devices:
            _drop_weight_device(devices, major, minor, "weight", "leafWeight")

    def add_linux_resources_block_io_throttle_read_bps_device(
        self, major: int, minor: int, rate: int
    ) -> None:
        _add_or_replace_throttle_device(
            self._block_io_list("throttleReadBpsDevice"), major, minor, rate
        )

    def drop_linux_resources_block_io_throttle_read_bps_device(
        self, major: int, minor: int
    ) -> None:
        devices = self._existing_block_io_list("throttleReadBpsDevice")
        if devices:
            _drop_throttle_device(devices, major, minor)

    def add_linux_resources_block_io_throttle_read_iops_device(
        self, major: int, minor: int, rate: int
    ) -> None:
        _add_or_replace_throttle_device(
            self._block_io_list("throttleReadIOPSDevice"), major, minor, rate
        )

    def drop_linux_resources_block_io_throttle_read_iops_device(
        self, major: int, minor: int
    ) -> None:
        devices = self._existing_block_io_list("throttleReadIOPSDevice")
        if devices:
            _drop_throttle_device(devices, major, minor)

    def add_linux_resources_block_io_throttle_write_bps_device(
        self, major: int, minor: int, rate: int
    ) -> None:
        _add_or_replace_throttle_device(
            self._block_io_list("throttleWriteBpsDevice"), major, minor, rate
        )

    def drop_linux_resources_block_io_throttle_write_bps_device(
        self, major: int, minor: int
    ) -> None:
        devices = self._existing_block_io_list("throttleWriteBpsDevice")
        if devices:
            _drop_throttle_device(devices, major, minor)

    def add_linux_resources_block_io_throttle_write_iops_device(
        self, major: int, minor: int, rate: int
    ) -> None:
        _add_or_replace_throttle_device(
            self._block_io_list("throttleWriteIOPSDevice"), major, minor, rate
        )

    def drop_linux_resources_block_io_throttle_write_iops_device(
        self, major: int, minor: int
    ) -> None:
        devices = self._existing_block_io_list("throttleWriteIOPSDevice")
        if devices:
            _drop_throttle_device(devices, major, minor)

    # -- CPU ------------------------------------------------------------

    def set_linux_resources_cpu_shares(self, shares: int) -> None:
        self._init_config_linux_resources_cpu()["shares"] = shares

    def set_linux_resources_cpu_quota(self, quota: int) -> None:
        self._init_config_linux_resources_cpu()["quota"] = quota

    def set_linux_resources_cpu_period(self, period: int) -> None:
        self._init_config_linux_resources_cpu()["period"] = period

    def set_linux_resources_cpu_realtime_runtime(self, time: int) -> None:
        self._init_config_linux_resources_cpu()["realtimeRuntime"] = time

    def set_linux_resources_cpu_realtime_period(self, period: int) -> None:
        self._init_config_linux_resources_cpu()["realtimePeriod"] = period

    def set_linux_resources_cpu_cpus(self, cpus: str) -> None:
        self._init_config_linux_resources_cpu()["cpus"] = cpus

    def set_linux_resources_cpu_mems(self, mems: str) -> None:
        self._init_config_linux_resources_cpu()["mems"] = mems

    # -- hugepages ------------------------------------------------------

    def add_linux_resources_hugepage_limit(self, page_size: str, limit: int) -> None:
        resources = self._init_config_linux_resources()
        limits = resources.get("hugepageLimits")
        if limits is None:
            limits = resources["hugepageLimits"] = []
        for entry in limits:
            if entry.get("pageSize") == page_size:
                entry["limit"] = limit
                return
        limits.append({"pageSize": page_size, "limit": limit})

    def drop_linux_resources_hugepage_limit(self, page_size: str) -> None:
        limits = self._linux_path("resources", "hugepageLimits")
        if not limits:
            return
        for index, entry in enumerate(limits):
            if entry.get("pageSize") == page_size:
                del limits[index]
                return

    # -- memory ---------------------------------------------------------

    def set_linux_resources_memory_limit(self, limit: int) -> None:
        self._init_config_linux_resources_memory()["limit"] = limit

    def set_linux_resources_memory_reservation(self, reservation: int) -> None:
        self._init_config_linux_resources_memory()["reservation"] = reservation

    def set_linux_resources_memory_swap(self, swap: int) -> None:
        self._init_config_linux_resources_memory()["swap"] = swap

    def set_linux_resources_memory_kernel(self, kernel: int) -> None:
        self._init_config_linux_resources_memory()["kernel"] = kernel

    def set_linux_resources_memory_kernel_tcp(self, kernel_tcp: int) -> None:
        self._init_config_linux_resources_memory()["kernelTCP"] = kernel_tcp

    def set_linux_resources_memory_swappiness(self, swappiness: int) -> None:
        self._init_config_linux_resources_memory()["swappiness"] = swappiness

    def set_linux_resources_memory_disable_oom_killer(self, disable: bool) -> None:
        self._init_config_linux_resources_memory()["disableOOMKiller"] = disable

    # -- network and pids -----------------------------------------------

    def set_linux_resources_network_class_id(self, classid: int) -> None:
        self._init_config_linux_resources_network()["classID"] = classid

    def add_linux_resources_network_priorities(self, name: str, prio: int) -> None:
        network = self._init_config_linux_resources_network()
        priorities = network.get("priorities")
        if priorities is None:
            priorities = network["priorities"] = []
        for entry in priorities:
            if entry.get("name") == name:
                entry["priority"] = prio
                return
        priorities.append({"name": name, "priority": prio})

    def drop_linux_resources_network_priorities(self, name: str) -> None:
        priorities = self._linux_path("resources", "network", "priorities")
        if not priorities:
            return
        for index, entry in enumerate(priorities):
            if entry.get("name") == name:
                del priorities[index]
                return

    def set_linux_resources_pids_limit(self, limit: int) -> None:
        self._init_config_linux_resources_pids()["limit"] = limit

    # -- sysctl ---------------------------------------------------------

    def clear_linux_sysctl(self) -> None:
        linux = self._linux_path()
        if linux is None:
            return
        linux["sysctl"] = {}

    def add_linux_sysctl(self, key: str, value: str) -> None:
        self._init_config_linux_sysctl()[key] = value

    def remove_linux_sysctl(self, key: str) -> None:
        sysctl = self._linux_path("sysctl")
        if sysctl is None:
            return
        sysctl.pop(key, None)

    # -- ID mappings ----------------------------------------------------

    def clear_linux_uid_mappings(self) -> None:
        linux = self._linux_path()
        if linux is None:
            return
        linux["uidMappings"] = []

    def add_linux_uid_mapping(self, hid: int, cid: int, size: int) -> None:
        linux = self._init_config_linux()
        mappings = linux.get("uidMappings")
        if mappings is None:
            mappings = linux["uidMappings"] = []
        mappings.append({"containerID": cid, "hostID": hid, "size": size})

    def clear_linux_gid_mappings(self) -> None:
        linux = self._linux_path()
        if linux is None:
            return
        linux["gidMappings"] = []

    def add_linux_gid_mapping(self, hid: int, cid: int, size: int) -> None:
        linux = self._init_config_linux()
        mappings = linux.get("gidMappings")
        if mappings is None:
            mappings = linux["gidMappings"] = []
        mappings.append({"containerID": cid, "hostID": hid, "size": size})

    def set_linux_root_propagation(self, rp: str) -> None:
        """Set the rootfs propagation; raise ValueError for an unknown mode."""
        if rp not in _ROOT_PROPAGATIONS:
            raise ValueError(
                f'rootfs-propagation "{rp}" must be empty or one of '
                "(r)private|(r)slave|(r)shared|(r)unbindable"
            )
        self._init_config_linux()["rootfsPropagation"] = rp

    # -- device cgroup --------------------------------------------------

    def add_linux_resources_device(
        self,
        allow: bool,
        dev_type: str,
        major: int | None,
        minor: int | None,
        access: str,
    ) -> None:
        resources = self._init_config_linux_resources()
        devices = resources.get("devices")
        if devices is None:
            devices = resources["devices"] = []
        device: dict[str, Any] = {"allow": allow}
        if dev_type:
            device["type"] = dev_type
        if major is not None:
            device["major"] = major
        if minor is not None:
            device["minor"] = minor
        if access:
            device["access"] = access
        devices.append(device)

    def remove_linux_resources_device(
        self,
        allow: bool,
        dev_type: str,
        major: int | None,
        minor: int | None,
        access: str,
    ) -> None:
        devices = self._linux_path("resources", "devices")
        if not devices:
            return
        for index, device in enumerate(devices):
            if (
                device.get("allow", False) == allow
                and (device.get("type") or "") == dev_type
                and (device.get("access") or "") == access
                and device.get("major") == major
                and device.get("minor") == minor
            ):
                del devices[index]
                return