# ocigen

`ocigen` builds and edits OCI runtime configuration documents (`config.json`)
from Python. It starts from per-platform defaults and has a method for
editing each section of the document. It writes the result as indented JSON.
It can also build and edit seccomp profiles on their own.

The configuration is held as a plain JSON-shaped `dict` in `Generator.config`.
It uses the spec's own key names (`ociVersion`, `process`, `linux`, ...).
Setters create missing sections as they need them. Clearing and removing
methods do nothing when the section is not there.

## Installation

```
pip install ocigen
```

To run the test suite:

```
pip install "ocigen[test]"
pytest
```

## Quick start

```python
from ocigen.generator import new
from ocigen.base import ExportOptions

g = new("linux")                     # "linux", "solaris" or "windows"
g.set_hostname("box")
g.set_root_readonly(True)
g.add_process_env("LANG", "C.UTF-8")
g.add_process_rlimits("RLIMIT_NOFILE", 4096, 4096)
g.set_linux_resources_memory_limit(512 * 1024 * 1024)
g.add_or_replace_linux_namespace("user", "")
g.add_process_capability("CAP_SYS_PTRACE")
g.remove_mount("/dev/shm")

g.save_to_file("config.json", ExportOptions(seccomp=False))
```

You can also load an existing document and edit it:

```python
from ocigen.generator import new_from_file

g = new_from_file("config.json")
g.set_process_args(["/bin/app", "--serve"])
g.save_to_file("config.json", ExportOptions(seccomp=False))
```

## Constructors

All four constructors are in `ocigen.generator`:

- `new(os_name)` builds the defaults for `linux`, `solaris` or `windows`.
  - On Linux these defaults include capabilities, mounts, namespaces, a device cgroup rule and the default seccomp profile.
- `new_from_spec(config)` wraps an existing mapping.
- `new_from_template(reader)` reads JSON from a text stream.
- `new_from_file(path)` reads JSON from a file. A missing file raises `FileNotFoundError`.

`Generator(config, host_specific)` may also be called directly. When
`host_specific` is true, capabilities are checked against what the running
kernel supports.

## Environment variables

- `add_process_env(name, value)` appends `name=value`.
- `add_multiple_process_env(["k=v", ...])` appends each entry in turn.

Both replace, in place, an entry that the generator itself added earlier under the same name.

Entries that were already in the document when the generator was created are indexed by their whole text, not by their name. For example, on a fresh `new("linux")` generator, `add_process_env("PATH", ...)` appends a second `PATH=` entry and leaves the first one in place.

`clear_process_env()` empties the list.

## Saving

`save(writer, export_opts)` writes the JSON to a text stream.
`save_to_file(path, export_opts)` writes it to a file.

If the `linux` section holds only empty values, it is removed before writing.

`ExportOptions(seccomp=True)` writes only the `linux.seccomp` profile. If the document has no `linux` section, this raises `ValueError`.

## Seccomp

The generator has helpers for the seccomp section:

```python
from ocigen.seccomp import SyscallOpts

g.set_default_seccomp_action("errno")
g.set_seccomp_architecture("amd64")
g.set_syscall_action(SyscallOpts(action="allow", syscall="getcwd"))
g.set_syscall_action(SyscallOpts(
    action="allow", syscall="personality",
    index="0", value="8", value_two="0", operator="EQ",
))
g.remove_seccomp_rule("getcwd")
```

Accepted values:

- Actions: `allow`, `errno`, `kill`, `trace` and `trap`.
- Operators: `NE`, `LT`, `LE`, `EQ`, `GE`, `GT` and `ME`.

How existing rules are affected:

- `set_default_seccomp_action` also removes the rules that already use that action.
- `set_default_seccomp_action_force` sets the default action and nothing else.
- `set_syscall_action` appends a new rule, overwrites an existing rule for the same syscall, or leaves the rules as they are, depending on the rules already present.

The module-level functions in `ocigen.seccomp` work on a seccomp mapping directly:

- `parse_syscall_flag`
- `parse_default_action`
- `parse_default_action_force`
- `parse_architecture_flag`
- `remove_action`
- `remove_all_seccomp_rules`
- `remove_all_matching_rules`

`ocigen.seccomp_default.default_profile(spec, arch)` builds the default
whitelist profile for a spec. The allowed syscalls depend on the
capabilities in the spec's process and on the target architecture.

- `arch` is a GOARCH-style name such as `amd64` or `arm64`.
- If you leave `arch` out, the current machine is used; `native_arch()` reports what that is.
- `arches(arch)` lists the seccomp architectures that belong to it.

## Capabilities

`ocigen.capabilities` defines two functions:

- `cap_valid(name, host_specific)` raises `ValueError` for a name that is not a known `CAP_*` capability.
- `last_cap()` reads the highest capability number from `/proc/sys/kernel/cap_last_cap`. If that is unavailable, it returns the highest known capability number.

The generator uses these in the following methods:

- `add_process_capability*` methods add a capability to the sets they name.
- `drop_process_capability*` methods remove it from those sets. They raise for an invalid name only after removing it.
- `setup_privileged(True)` grants every capability in all five sets and removes the SELinux label, the AppArmor profile and the seccomp profile.

## Errors

Invalid input raises `ValueError`. This covers:

- an unknown platform passed to `new`;
- an unknown namespace type;
- an unknown default seccomp action, operator or architecture;
- a bad rootfs propagation mode;
- a VM path that does not start with `/`;
- an unsupported VM image format;
- a Windows device `id_type` other than `class`;
- an unknown capability.

An unknown action passed through `set_syscall_action` is not an error; the resulting rule has an empty action.

`add_device` issues a `UserWarning` when another device has the same type, major and minor numbers.

## What it does not do

`ocigen` only builds and edits configuration documents. It does not:

- validate a document or a bundle against the runtime specification;
- run containers;
- provide a command-line program.