"""Core configuration generator: spec, root, annotations and process settings.

The configuration is held as a JSON-shaped mapping that follows the OCI
runtime spec layout (``ociVersion``, ``root``, ``process``, ``linux`` ...).
Sections are created on demand by the setters and left alone by the
clearing and removing methods when they do not exist.
"""

from __future__ import annotations

import json
from collections.abc import Callable, Iterable, MutableMapping
from dataclasses import dataclass
from os import PathLike
from typing import IO, Any

Config = MutableMapping[str, Any]


@dataclass
class ExportOptions:
    """Toggles for exporting only parts of the configuration."""

    seccomp: bool = False


def _ensure(parent: MutableMapping[str, Any], key: str, factory: Callable[[], Any]) -> Any:
    """Return ``parent[key]``, creating it with ``factory`` when missing or None."""
    value = parent.get(key)
    if value is None:
        value = parent[key] = factory()
    return value


def _env_cache(env: Iterable[str] | None) -> dict[str, int]:
    return {entry: index for index, entry in enumerate(env or [])}


def _is_empty_value(value: Any) -> bool:
    return value is None or value == "" or (
        isinstance(value, (list, dict)) and not value
    )


class GeneratorBase:
    """Builds and edits an OCI runtime configuration."""

    def __init__(self, config: Config | None = None, host_specific: bool = False) -> None:
        self.config = config
        self.host_specific = host_specific
        process = (config or {}).get("process")
        self._env_map = _env_cache(process.get("env") if process else None)

    # -- section initialisers -------------------------------------------

    def _init_config(self) -> Config:
        if self.config is None:
            self.config = {"ociVersion": ""}
        return self.config

    def _init_config_process(self) -> dict[str, Any]:
        process = _ensure(self._init_config(), "process", dict)
        _ensure(process, "user", lambda: {"uid": 0, "gid": 0})
        process.setdefault("cwd", "")
        return process

    def _init_config_process_console_size(self) -> dict[str, Any]:
        return _ensure(
            self._init_config_process(), "consoleSize", lambda: {"height": 0, "width": 0}
        )

    def _init_config_process_capabilities(self) -> dict[str, Any]:
        return _ensure(self._init_config_process(), "capabilities", dict)

    def _init_config_root(self) -> dict[str, Any]:
        return _ensure(self._init_config(), "root", lambda: {"path": ""})

    def _init_config_annotations(self) -> dict[str, str]:
        return _ensure(self._init_config(), "annotations", dict)

    def _init_config_hooks(self) -> dict[str, Any]:
        return _ensure(self._init_config(), "hooks", dict)

    def _init_config_linux(self) -> dict[str, Any]:
        return _ensure(self._init_config(), "linux", dict)

    def _init_config_linux_intel_rdt(self) -> dict[str, Any]:
        return _ensure(self._init_config_linux(), "intelRdt", dict)

    def _init_config_linux_sysctl(self) -> dict[str, str]:
        return _ensure(self._init_config_linux(), "sysctl", dict)

    def _init_config_linux_seccomp(self) -> dict[str, Any]:
        return _ensure(self._init_config_linux(), "seccomp", lambda: {"defaultAction": ""})

    def _init_config_linux_resources(self) -> dict[str, Any]:
        return _ensure(self._init_config_linux(), "resources", dict)

    def _init_config_linux_resources_block_io(self) -> dict[str, Any]:
        return _ensure(self._init_config_linux_resources(), "blockIO", dict)

    def _init_config_linux_resources_cpu(self) -> dict[str, Any]:
        return _ensure(self._init_config_linux_resources(), "cpu", dict)

    def _init_config_linux_resources_memory(self) -> dict[str, Any]:
        return _ensure(self._init_config_linux_resources(), "memory", dict)

    def _init_config_linux_resources_network(self) -> dict[str, Any]:
        return _ensure(self._init_config_linux_resources(), "network", dict)

    def _init_config_linux_resources_pids(self) -> dict[str, Any]:
        return _ensure(self._init_config_linux_resources(), "pids", lambda: {"limit": 0})

    def _init_config_solaris(self) -> dict[str, Any]:
        return _ensure(self._init_config(), "solaris", dict)

    def _init_config_solaris_capped_cpu(self) -> dict[str, Any]:
        return _ensure(self._init_config_solaris(), "cappedCPU", dict)

    def _init_config_solaris_capped_memory(self) -> dict[str, Any]:
        return _ensure(self._init_config_solaris(), "cappedMemory", dict)

    def _init_config_windows(self) -> dict[str, Any]:
        return _ensure(self._init_config(), "windows", dict)

    def _init_config_windows_network(self) -> dict[str, Any]:
        return _ensure(self._init_config_windows(), "network", dict)

    def _init_config_windows_hyperv(self) -> dict[str, Any]:
        return _ensure(self._init_config_windows(), "hyperv", dict)

    def _init_config_windows_resources(self) -> dict[str, Any]:
        return _ensure(self._init_config_windows(), "resources", dict)

    def _init_config_windows_resources_memory(self) -> dict[str, Any]:
        return _ensure(self._init_config_windows_resources(), "memory", dict)

    def _init_config_vm(self) -> dict[str, Any]:
        return _ensure(self._init_config(), "vm", lambda: {"kernel": {"path": ""}})

    def _init_config_vm_hypervisor(self) -> dict[str, Any]:
        return _ensure(self._init_config_vm(), "hypervisor", dict)

    def _init_config_vm_kernel(self) -> dict[str, Any]:
        return _ensure(self._init_config_vm(), "kernel", lambda: {"path": ""})

    def _init_config_vm_image(self) -> dict[str, Any]:
        return _ensure(self._init_config_vm(), "image", lambda: {"path": "", "format": ""})

    def _process(self) -> dict[str, Any] | None:
        if self.config is None:
            return None
        return self.config.get("process")

    # -- export ---------------------------------------------------------

    def _marshal(self, export_opts: ExportOptions) -> str:
        if self.config is None:
            return json.dumps(None)
        linux = self.config.get("linux")
        if linux is not None and all(_is_empty_value(v) for v in linux.values()):
            self.config["linux"] = None
            del self.config["linux"]
            linux = None
        if export_opts.seccomp:
            if linux is None:
                raise ValueError("configuration has no linux section to export seccomp from")
            data = linux.get("seccomp")
        else:
            data = self.config
        return json.dumps(data, indent="\t", ensure_ascii=False)

    def save(self, writer: IO[str], export_opts: ExportOptions | None = None) -> None:
        """Write the configuration as indented JSON into ``writer``."""
        writer.write(self._marshal(export_opts or ExportOptions()))

    def save_to_file(
        self, path: str | PathLike[str], export_opts: ExportOptions | None = None
    ) -> None:
        """Write the configuration as indented JSON into the file at ``path``."""
        text = self._marshal(export_opts or ExportOptions())
        with open(path, "w", encoding="utf-8") as handle:
            handle.write(text)

    # -- top level ------------------------------------------------------

    def set_version(self, version: str) -> None:
        self._init_config()["ociVersion"] = version

    def set_root_path(self, path: str) -> None:
        self._init_config_root()["path"] = path

    def set_root_readonly(self, b: bool) -> None:
        self._init_config_root()["readonly"] = b

    def set_hostname(self, s: str) -> None:
        self._init_config()["hostname"] = s

    def set_oci_version(self, s: str) -> None:
        self._init_config()["ociVersion"] = s

    def clear_annotations(self) -> None:
        if self.config is None:
            return
        self.config["annotations"] = {}

    def add_annotation(self, key: str, value: str) -> None:
        self._init_config_annotations()[key] = value

    def remove_annotation(self, key: str) -> None:
        if self.config is None or self.config.get("annotations") is None:
            return
        self.config["annotations"].pop(key, None)

    def remove_hostname(self) -> None:
        if self.config is None:
            return
        self.config["hostname"] = ""

    # -- process --------------------------------------------------------

    def set_process_console_size(self, width: int, height: int) -> None:
        size = self._init_config_process_console_size()
        size["width"] = width
        size["height"] = height

    def set_process_uid(self, uid: int) -> None:
        self._init_config_process()["user"]["uid"] = uid

    def set_process_username(self, username: str) -> None:
        self._init_config_process()["user"]["username"] = username

    def set_process_gid(self, gid: int) -> None:
        self._init_config_process()["user"]["gid"] = gid

    def set_process_cwd(self, cwd: str) -> None:
        self._init_config_process()["cwd"] = cwd

    def set_process_no_new_privileges(self, b: bool) -> None:
        self._init_config_process()["noNewPrivileges"] = b

    def set_process_terminal(self, b: bool) -> None:
        self._init_config_process()["terminal"] = b

    def set_process_apparmor_profile(self, prof: str) -> None:
        self._init_config_process()["apparmorProfile"] = prof

    def set_process_args(self, args: list[str]) -> None:
        self._init_config_process()["args"] = args

    def clear_process_env(self) -> None:
        process = self._process()
        if process is None:
            return
        process["env"] = []
        self._env_map = {}

    def add_process_env(self, name: str, value: str) -> None:
        """Add ``name=value`` to the environment, replacing an entry cached under ``name``."""
        if not name:
            return
        self._init_config_process()
        self._add_env(f"{name}={value}", name)

    def add_multiple_process_env(self, envs: Iterable[str]) -> None:
        """Add ``name=value`` entries, replacing entries cached under the same name."""
        self._init_config_process()
        for entry in envs:
            self._add_env(entry, entry.split("=", 1)[0])

    def _add_env(self, env: str, key: str) -> None:
        process = self._init_config_process()
        entries = _ensure(process, "env", list)
        index = self._env_map.get(key)
        if index is not None:
            entries[index] = env
        else:
            entries.append(env)
            self._env_map[key] = len(entries) - 1

    def add_process_rlimits(self, r_type: str, r_hard: int, r_soft: int) -> None:
        process = self._init_config_process()
        rlimits = _ensure(process, "rlimits", list)
        for rlimit in rlimits:
            if rlimit.get("type") == r_type:
                rlimit["hard"] = r_hard
                rlimit["soft"] = r_soft
                return
        rlimits.append({"type": r_type, "hard": r_hard, "soft": r_soft})

    def remove_process_rlimits(self, r_type: str) -> None:
        process = self._process()
        if process is None:
            return
        rlimits = process.get("rlimits") or []
        for index, rlimit in enumerate(rlimits):
            if rlimit.get("type") == r_type:
                del rlimits[index]
                return

    def clear_process_rlimits(self) -> None:
        process = self._process()
        if process is None:
            return
        process["rlimits"] = []

    def clear_process_additional_gids(self) -> None:
        process = self._process()
        if process is None:
            return
        _ensure(process, "user", lambda: {"uid": 0, "gid": 0})["additionalGids"] = []

    def add_process_additional_gid(self, gid: int) -> None:
        user = self._init_config_process()["user"]
        gids = _ensure(user, "additionalGids", list)
        if gid not in gids:
            gids.append(gid)

    def set_process_selinux_label(self, label: str) -> None:
        self._init_config_process()["selinuxLabel"] = label

    def set_process_oom_score_adj(self, adj: int) -> None:
        self._init_config_process()["oomScoreAdj"] = adj