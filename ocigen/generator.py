"""Full OCI runtime configuration generator and its constructors.

``Generator`` joins the core settings, the Linux resource settings and the
capability settings with hooks, mounts, namespaces, devices, seccomp,
Solaris, VM and Windows settings.  The constructors build a generator from
the platform defaults, an existing mapping, a file or a text stream.
"""

from __future__ import annotations

import json
import warnings
from collections.abc import Iterable, Mapping
from os import PathLike
from typing import IO, Any

from ocigen.base import Config, GeneratorBase
from ocigen.capabilities import CapabilitiesMixin
from ocigen.resources import ResourcesMixin
from ocigen.seccomp import (
    SyscallOpts,
    parse_architecture_flag,
    parse_default_action,
    parse_default_action_force,
    parse_syscall_flag,
    remove_action,
    remove_all_seccomp_rules,
)
from ocigen.seccomp_default import default_profile

SPEC_VERSION = "1.0.1"

NAMESPACES = ("network", "pid", "mount", "ipc", "uts", "user", "cgroup")

_SUPPORTED_OSES = ("linux", "solaris", "windows")

_IMAGE_FORMATS = ("raw", "qcow2", "vdi", "vmdk", "vhd")

_DEFAULT_CAPABILITIES = (
    "CAP_CHOWN",
    "CAP_DAC_OVERRIDE",
    "CAP_FSETID",
    "CAP_FOWNER",
    "CAP_MKNOD",
    "CAP_NET_RAW",
    "CAP_SETGID",
    "CAP_SETUID",
    "CAP_SETFCAP",
    "CAP_SETPCAP",
    "CAP_NET_BIND_SERVICE",
    "CAP_SYS_CHROOT",
    "CAP_KILL",
    "CAP_AUDIT_WRITE",
)

_DEFAULT_ENV = (
    "PATH=/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin",
    "TERM=xterm",
)


def _default_mounts() -> list[dict[str, Any]]:
    def mount(destination: str, mount_type: str, source: str, *options: str) -> dict[str, Any]:
        return {
            "destination": destination,
            "type": mount_type,
            "source": source,
            "options": list(options),
        }

    return [
        mount("/proc", "proc", "proc", "nosuid", "noexec", "nodev"),
        mount("/dev", "tmpfs", "tmpfs", "nosuid", "strictatime", "mode=755", "size=65536k"),
        mount(
            "/dev/pts", "devpts", "devpts",
            "nosuid", "noexec", "newinstance", "ptmxmode=0666", "mode=0620", "gid=5",
        ),
        mount("/dev/shm", "tmpfs", "shm", "nosuid", "noexec", "nodev", "mode=1777", "size=65536k"),
        mount("/dev/mqueue", "mqueue", "mqueue", "nosuid", "noexec", "nodev"),
        mount("/sys", "sysfs", "sysfs", "nosuid", "noexec", "nodev", "ro"),
    ]


def _namespace(ns: str, path: str) -> dict[str, str]:
    if ns not in NAMESPACES:
        raise ValueError(f'unrecognized namespace "{ns}"')
    namespace = {"type": ns}
    if path:
        namespace["path"] = path
    return namespace


def _require_absolute(label: str, path: str) -> None:
    if not path.startswith("/"):
        raise ValueError(f"{label} {path} is not an absolute path")


def _append(parent: dict[str, Any], key: str, item: Any) -> None:
    items = parent.get(key)
    if items is None:
        items = parent[key] = []
    items.append(item)


class Generator(ResourcesMixin, CapabilitiesMixin, GeneratorBase):
    """Builds and edits an OCI runtime configuration."""

    def _linux(self) -> dict[str, Any] | None:
        if self.config is None:
            return None
        return self.config.get("linux")

    # -- hooks ------------------------------------------------------------

    def _clear_hooks(self, kind: str) -> None:
        if self.config is None or self.config.get("hooks") is None:
            return
        self.config["hooks"][kind] = []

    def clear_pre_start_hooks(self) -> None:
        self._clear_hooks("prestart")

    def add_pre_start_hook(self, hook: Mapping[str, Any]) -> None:
        _append(self._init_config_hooks(), "prestart", hook)

    def clear_post_stop_hooks(self) -> None:
        self._clear_hooks("poststop")

    def add_post_stop_hook(self, hook: Mapping[str, Any]) -> None:
        _append(self._init_config_hooks(), "poststop", hook)

    def clear_post_start_hooks(self) -> None:
        self._clear_hooks("poststart")

    def add_post_start_hook(self, hook: Mapping[str, Any]) -> None:
        _append(self._init_config_hooks(), "poststart", hook)

    # -- mounts -----------------------------------------------------------

    def add_mount(self, mnt: Mapping[str, Any]) -> None:
        _append(self._init_config(), "mounts", mnt)

    def remove_mount(self, dest: str) -> None:
        """Remove the first mount whose destination is ``dest``."""
        mounts = self._init_config().get("mounts") or []
        for index, mount in enumerate(mounts):
            if mount.get("destination") == dest:
                del mounts[index]
                return

    def mounts(self) -> list[Mapping[str, Any]]:
        mounts = self._init_config().get("mounts")
        return mounts if mounts is not None else []

    def clear_mounts(self) -> None:
        if self.config is None:
            return
        self.config["mounts"] = []

    # -- namespaces -------------------------------------------------------

    def clear_linux_namespaces(self) -> None:
        linux = self._linux()
        if linux is None:
            return
        linux["namespaces"] = []

    def add_or_replace_linux_namespace(self, ns: str, path: str = "") -> None:
        """Add a namespace, replacing one of the same type; raise for unknown types."""
        namespace = _namespace(ns, path)
        linux = self._init_config_linux()
        namespaces = linux.get("namespaces")
        if namespaces is None:
            namespaces = linux["namespaces"] = []
        for index, existing in enumerate(namespaces):
            if existing.get("type") == namespace["type"]:
                namespaces[index] = namespace
                return
        namespaces.append(namespace)

    def remove_linux_namespace(self, ns: str) -> None:
        """Remove the namespace of type ``ns``; raise for unknown types."""
        namespace = _namespace(ns, "")
        linux = self._linux()
        if linux is None:
            return
        namespaces = linux.get("namespaces") or []
        for index, existing in enumerate(namespaces):
            if existing.get("type") == namespace["type"]:
                del namespaces[index]
                return

    # -- devices ----------------------------------------------------------

    def add_device(self, device: Mapping[str, Any]) -> None:
        """Add a device, replacing one with the same path."""
        linux = self._init_config_linux()
        devices = linux.get("devices")
        if devices is None:
            devices = linux["devices"] = []
        for index, existing in enumerate(devices):
            if existing.get("path") == device.get("path"):
                devices[index] = device
                return
            if (
                existing.get("type") == device.get("type")
                and existing.get("major") == device.get("major")
                and existing.get("minor") == device.get("minor")
            ):
                warnings.warn(
                    "The same type, major and minor should not be used for multiple devices.",
                    stacklevel=2,
                )
        devices.append(device)

    def remove_device(self, path: str) -> None:
        linux = self._linux()
        if linux is None or linux.get("devices") is None:
            return
        devices = linux["devices"]
        for index, device in enumerate(devices):
            if device.get("path") == path:
                del devices[index]
                return

    def clear_linux_devices(self) -> None:
        linux = self._linux()
        if linux is None or linux.get("devices") is None:
            return
        linux["devices"] = []

    # -- seccomp ----------------------------------------------------------

    def set_syscall_action(self, arguments: SyscallOpts) -> None:
        parse_syscall_flag(arguments, self._init_config_linux_seccomp())

    def set_default_seccomp_action(self, action: str) -> None:
        """Set the default action and remove the rules that already use it."""
        parse_default_action(action, self._init_config_linux_seccomp())

    def set_default_seccomp_action_force(self, action: str) -> None:
        parse_default_action_force(action, self._init_config_linux_seccomp())

    def set_seccomp_architecture(self, architecture: str) -> None:
        parse_architecture_flag(architecture, self._init_config_linux_seccomp())

    def remove_seccomp_rule(self, arguments: str) -> None:
        remove_action(arguments, self._init_config_linux_seccomp())

    def remove_all_seccomp_rules(self) -> None:
        remove_all_seccomp_rules(self._init_config_linux_seccomp())

    def add_linux_masked_paths(self, path: str) -> None:
        _append(self._init_config_linux(), "maskedPaths", path)

    def add_linux_readonly_paths(self, path: str) -> None:
        _append(self._init_config_linux(), "readonlyPaths", path)

    # -- solaris ----------------------------------------------------------

    def add_solaris_anet(self, anet: Mapping[str, Any]) -> None:
        _append(self._init_config_solaris(), "anet", anet)

    def set_solaris_capped_cpu_ncpus(self, ncpus: str) -> None:
        self._init_config_solaris_capped_cpu()["ncpus"] = ncpus

    def set_solaris_capped_memory_physical(self, physical: str) -> None:
        self._init_config_solaris_capped_memory()["physical"] = physical

    def set_solaris_capped_memory_swap(self, swap: str) -> None:
        self._init_config_solaris_capped_memory()["swap"] = swap

    def set_solaris_limit_priv(self, limit_priv: str) -> None:
        self._init_config_solaris()["limitpriv"] = limit_priv

    def set_solaris_max_shm_memory(self, memory: str) -> None:
        self._init_config_solaris()["maxShmMemory"] = memory

    def set_solaris_milestone(self, milestone: str) -> None:
        self._init_config_solaris()["milestone"] = milestone

    # -- virtual machines -------------------------------------------------

    def set_vm_hypervisor_path(self, path: str) -> None:
        _require_absolute("hypervisorPath", path)
        self._init_config_vm_hypervisor()["path"] = path

    def set_vm_hypervisor_parameters(self, parameters: list[str]) -> None:
        self._init_config_vm_hypervisor()["parameters"] = parameters

    def set_vm_kernel_path(self, path: str) -> None:
        _require_absolute("kernelPath", path)
        self._init_config_vm_kernel()["path"] = path

    def set_vm_kernel_parameters(self, parameters: list[str]) -> None:
        self._init_config_vm_kernel()["parameters"] = parameters

    def set_vm_kernel_init_rd(self, initrd: str) -> None:
        _require_absolute("kernelInitrd", initrd)
        self._init_config_vm_kernel()["initrd"] = initrd

    def set_vm_image_path(self, path: str) -> None:
        _require_absolute("imagePath", path)
        self._init_config_vm_image()["path"] = path

    def set_vm_image_format(self, format: str) -> None:
        if format not in _IMAGE_FORMATS:
            raise ValueError("Commonly supported formats are: raw, qcow2, vdi, vmdk, vhd")
        self._init_config_vm_image()["format"] = format

    # -- windows ----------------------------------------------------------

    def set_windows_hyperv_utility_vm_path(self, path: str) -> None:
        self._init_config_windows_hyperv()["utilityVMPath"] = path

    def set_windows_ignore_flushes_during_boot(self, ignore: bool) -> None:
        self._init_config_windows()["ignoreFlushesDuringBoot"] = ignore

    def add_windows_layer_folders(self, folder: str) -> None:
        _append(self._init_config_windows(), "layerFolders", folder)

    def add_windows_devices(self, id: str, id_type: str) -> None:
        """Add a device, or update the one with the same id; only ``class`` is valid."""
        if id_type != "class":
            raise ValueError(
                f"Invalid idType value: {id_type}. Windows only supports a value of class"
            )
        windows = self._init_config_windows()
        devices = windows.get("devices")
        if devices is None:
            devices = windows["devices"] = []
        for device in devices:
            if device.get("id") == id:
                device["idType"] = id_type
                return
        devices.append({"id": id, "idType": id_type})

    def set_windows_network(self, network: Mapping[str, Any]) -> None:
        self._init_config_windows()["network"] = dict(network)

    def set_windows_network_allow_unqualified_dns_query(self, setting: bool) -> None:
        self._init_config_windows_network()["allowUnqualifiedDNSQuery"] = setting

    def set_windows_network_namespace(self, path: str) -> None:
        self._init_config_windows_network()["networkNamespace"] = path

    def set_windows_resources_cpu(self, cpu: Mapping[str, Any]) -> None:
        self._init_config_windows_resources()["cpu"] = dict(cpu)

    def set_windows_resources_memory_limit(self, limit: int) -> None:
        self._init_config_windows_resources_memory()["limit"] = limit

    def set_windows_resources_storage(self, storage: Mapping[str, Any]) -> None:
        self._init_config_windows_resources()["storage"] = dict(storage)

    def set_windows_servicing(self, servicing: bool) -> None:
        self._init_config_windows()["servicing"] = servicing


def new(os_name: str) -> Generator:
    """Create a generator holding the default configuration for ``os_name``."""
    if os_name not in _SUPPORTED_OSES:
        raise ValueError(f"no defaults configured for {os_name}")

    config: dict[str, Any] = {"ociVersion": SPEC_VERSION, "hostname": "mrsdalloway"}

    if os_name == "windows":
        config["process"] = {
            "user": {"uid": 0, "gid": 0},
            "args": ["cmd"],
            "cwd": "C:\\",
        }
        config["windows"] = {}
    else:
        config["root"] = {"path": "rootfs", "readonly": False}
        config["process"] = {
            "terminal": False,
            "user": {"uid": 0, "gid": 0},
            "args": ["sh"],
            "env": list(_DEFAULT_ENV),
            "cwd": "/",
            "rlimits": [{"type": "RLIMIT_NOFILE", "hard": 1024, "soft": 1024}],
        }

    if os_name == "linux":
        config["process"]["capabilities"] = {
            set_name: list(_DEFAULT_CAPABILITIES)
            for set_name in ("bounding", "effective", "inheritable", "permitted", "ambient")
        }
        config["mounts"] = _default_mounts()
        config["linux"] = {
            "resources": {"devices": [{"allow": False, "access": "rwm"}]},
            "namespaces": [
                {"type": ns} for ns in ("pid", "network", "ipc", "uts", "mount")
            ],
        }
        config["linux"]["seccomp"] = default_profile(config)

    return Generator(config)


def new_from_spec(config: Config | None) -> Generator:
    """Create a generator around an existing configuration mapping."""
    return Generator(config)


def new_from_template(reader: IO[str]) -> Generator:
    """Create a generator from a JSON configuration read from ``reader``."""
    config = json.load(reader)
    if not isinstance(config, dict):
        raise ValueError("configuration template must be a JSON object")
    return Generator(config)


def new_from_file(path: str | PathLike[str]) -> Generator:
    """Create a generator from the JSON configuration file at ``path``."""
    try:
        handle = open(path, encoding="utf-8")
    except FileNotFoundError:
        raise FileNotFoundError(f"template configuration at {path} not found") from None
    with handle:
        return new_from_template(handle)


def _env_entries(envs: Iterable[str]) -> list[str]:
    return list(envs)