"""The default seccomp profile for Linux containers.

The profile is a JSON-shaped mapping as found under ``linux.seccomp``
in a runtime spec.  It allows a fixed list of syscalls.  It allows further
syscalls for the capabilities the spec's process holds and for the target
architecture.  Every other syscall fails with an errno.
"""

from __future__ import annotations

import platform
from collections.abc import Mapping
from typing import Any

from ocigen.seccomp import (
    ACT_ALLOW,
    ACT_ERRNO,
    ARCH_AARCH64,
    ARCH_ARM,
    ARCH_MIPS,
    ARCH_MIPS64,
    ARCH_MIPS64N32,
    ARCH_MIPSEL,
    ARCH_MIPSEL64,
    ARCH_MIPSEL64N32,
    ARCH_S390,
    ARCH_S390X,
    ARCH_X32,
    ARCH_X86,
    ARCH_X86_64,
    OP_EQUAL_TO,
    OP_MASKED_EQUAL,
)

# Namespace flags of clone(2), as defined on linux/amd64.
CLONE_NEW_IPC = 0x8000000
CLONE_NEW_NET = 0x40000000
CLONE_NEW_NS = 0x20000
CLONE_NEW_PID = 0x20000000
CLONE_NEW_USER = 0x10000000
CLONE_NEW_UTS = 0x4000000
CLONE_NEW_CGROUP = 0x02000000

_CLONE_FLAGS_INDEX = 0

_ARCH_FAMILIES: dict[str, list[str]] = {
    "amd64": [ARCH_X86_64, ARCH_X86, ARCH_X32],
    "arm64": [ARCH_ARM, ARCH_AARCH64],
    "mips64": [ARCH_MIPS, ARCH_MIPS64, ARCH_MIPS64N32],
    "mips64n32": [ARCH_MIPS, ARCH_MIPS64, ARCH_MIPS64N32],
    "mipsel64": [ARCH_MIPSEL, ARCH_MIPSEL64, ARCH_MIPSEL64N32],
    "mipsel64n32": [ARCH_MIPSEL, ARCH_MIPSEL64, ARCH_MIPSEL64N32],
    "s390x": [ARCH_S390, ARCH_S390X],
}

_MACHINE_NAMES = {
    "x86_64": "amd64",
    "amd64": "amd64",
    "i386": "386",
    "i486": "386",
    "i586": "386",
    "i686": "386",
    "x86": "386",
    "aarch64": "arm64",
    "arm64": "arm64",
    "armv6l": "arm",
    "armv7l": "arm",
    "armv8l": "arm",
    "arm": "arm",
    "mips": "mips",
    "mipsel": "mipsle",
    "mips64": "mips64",
    "mips64el": "mips64le",
    "ppc64": "ppc64",
    "ppc64le": "ppc64le",
    "s390": "s390",
    "s390x": "s390x",
    "riscv64": "riscv64",
}

_BASE_SYSCALLS = [
    "accept", "accept4", "access", "alarm", "bind", "brk", "capget", "capset",
    "chdir", "chmod", "chown", "chown32", "clock_getres", "clock_gettime",
    "clock_nanosleep", "close", "connect", "copy_file_range", "creat", "dup",
    "dup2", "dup3", "epoll_create", "epoll_create1", "epoll_ctl",
    "epoll_ctl_old", "epoll_pwait", "epoll_wait", "epoll_wait_old", "eventfd",
    "eventfd2", "execve", "execveat", "exit", "exit_group", "faccessat",
    "fadvise64", "fadvise64_64", "fallocate", "fanotify_mark", "fchdir",
    "fchmod", "fchmodat", "fchown", "fchown32", "fchownat", "fcntl", "fcntl64",
    "fdatasync", "fgetxattr", "flistxattr", "flock", "fork", "fremovexattr",
    "fsetxattr", "fstat", "fstat64", "fstatat64", "fstatfs", "fstatfs64",
    "fsync", "ftruncate", "ftruncate64", "futex", "futimesat", "getcpu",
    "getcwd", "getdents", "getdents64", "getegid", "getegid32", "geteuid",
    "geteuid32", "getgid", "getgid32", "getgroups", "getgroups32", "getitimer",
    "getpeername", "getpgid", "getpgrp", "getpid", "getppid", "getpriority",
    "getrandom", "getresgid", "getresgid32", "getresuid", "getresuid32",
    "getrlimit", "get_robust_list", "getrusage", "getsid", "getsockname",
    "getsockopt", "get_thread_area", "gettid", "gettimeofday", "getuid",
    "getuid32", "getxattr", "inotify_add_watch", "inotify_init",
    "inotify_init1", "inotify_rm_watch", "io_cancel", "ioctl", "io_destroy",
    "io_getevents", "ioprio_get", "ioprio_set", "io_setup", "io_submit", "ipc",
    "kill", "lchown", "lchown32", "lgetxattr", "link", "linkat", "listen",
    "listxattr", "llistxattr", "_llseek", "lremovexattr", "lseek", "lsetxattr",
    "lstat", "lstat64", "madvise", "memfd_create", "mincore", "mkdir",
    "mkdirat", "mknod", "mknodat", "mlock", "mlock2", "mlockall", "mmap",
    "mmap2", "mprotect", "mq_getsetattr", "mq_notify", "mq_open",
    "mq_timedreceive", "mq_timedsend", "mq_unlink", "mremap", "msgctl",
    "msgget", "msgrcv", "msgsnd", "msync", "munlock", "munlockall", "munmap",
    "nanosleep", "newfstatat", "_newselect", "open", "openat", "pause", "pipe",
    "pipe2", "poll", "ppoll", "prctl", "pread64", "preadv", "prlimit64",
    "pselect6", "pwrite64", "pwritev", "read", "readahead", "readlink",
    "readlinkat", "readv", "recv", "recvfrom", "recvmmsg", "recvmsg",
    "remap_file_pages", "removexattr", "rename", "renameat", "renameat2",
    "restart_syscall", "rmdir", "rt_sigaction", "rt_sigpending",
    "rt_sigprocmask", "rt_sigqueueinfo", "rt_sigreturn", "rt_sigsuspend",
    "rt_sigtimedwait", "rt_tgsigqueueinfo", "sched_getaffinity",
    "sched_getattr", "sched_getparam", "sched_get_priority_max",
    "sched_get_priority_min", "sched_getscheduler", "sched_rr_get_interval",
    "sched_setaffinity", "sched_setattr", "sched_setparam",
    "sched_setscheduler", "sched_yield", "seccomp", "select", "semctl",
    "semget", "semop", "semtimedop", "send", "sendfile", "sendfile64",
    "sendmmsg", "sendmsg", "sendto", "setfsgid", "setfsgid32", "setfsuid",
    "setfsuid32", "setgid", "setgid32", "setgroups", "setgroups32",
    "setitimer", "setpgid", "setpriority", "setregid", "setregid32",
    "setresgid", "setresgid32", "setresuid", "setresuid32", "setreuid",
    "setreuid32", "setrlimit", "set_robust_list", "setsid", "setsockopt",
    "set_thread_area", "set_tid_address", "setuid", "setuid32", "setxattr",
    "shmat", "shmctl", "shmdt", "shmget", "shutdown", "sigaltstack",
    "signalfd", "signalfd4", "sigreturn", "socket", "socketcall",
    "socketpair", "splice", "stat", "stat64", "statfs", "statfs64", "symlink",
    "symlinkat", "sync", "sync_file_range", "syncfs", "sysinfo", "syslog",
    "tee", "tgkill", "time", "timer_create", "timer_delete", "timerfd_create",
    "timerfd_gettime", "timerfd_settime", "timer_getoverrun",
    "timer_gettime", "timer_settime", "times", "tkill", "truncate",
    "truncate64", "ugetrlimit", "umask", "uname", "unlink", "unlinkat",
    "utime", "utimensat", "utimes", "vfork", "vmsplice", "wait4", "waitid",
    "waitpid", "write", "writev",
]

_CAPABILITY_SYSCALLS: dict[str, list[str]] = {
    "CAP_DAC_READ_SEARCH": ["open_by_handle_at"],
    "CAP_SYS_ADMIN": [
        "bpf", "clone", "fanotify_init", "lookup_dcookie", "mount",
        "name_to_handle_at", "perf_event_open", "setdomainname",
        "sethostname", "setns", "umount", "umount2", "unshare",
    ],
    "CAP_SYS_BOOT": ["reboot"],
    "CAP_SYS_CHROOT": ["chroot"],
    "CAP_SYS_MODULE": [
        "delete_module", "init_module", "finit_module", "query_module",
    ],
    "CAP_SYS_PACCT": ["acct"],
    "CAP_SYS_PTRACE": [
        "kcmp", "process_vm_readv", "process_vm_writev", "ptrace",
    ],
    "CAP_SYS_RAWIO": ["iopl", "ioperm"],
    "CAP_SYS_TIME": ["settimeofday", "stime", "adjtimex"],
    "CAP_SYS_TTY_CONFIG": ["vhangup"],
}

_CAPABILITY_SETS = ("bounding", "effective", "inheritable", "permitted", "ambient")


def native_arch() -> str:
    """Return the architecture of this machine in GOARCH-style naming."""
    machine = platform.machine().lower()
    return _MACHINE_NAMES.get(machine, machine)


def arches(arch: str | None = None) -> list[str]:
    """Return the seccomp architectures that ``arch`` supports natively."""
    if arch is None:
        arch = native_arch()
    return list(_ARCH_FAMILIES.get(arch, []))


def _allow(*names: str, args: list[dict[str, Any]] | None = None) -> dict[str, Any]:
    return {
        "names": list(names),
        "action": ACT_ALLOW,
        "args": [] if args is None else args,
    }


def _arg(index: int, value: int, op: str, value_two: int = 0) -> dict[str, Any]:
    return {"index": index, "value": value, "valueTwo": value_two, "op": op}


def _capabilities(spec: Mapping[str, Any]) -> list[str]:
    """Collect the distinct capabilities of every set, in first-seen order."""
    process = spec.get("process") or {}
    caps = process.get("capabilities") or {}
    seen: dict[str, None] = {}
    for set_name in _CAPABILITY_SETS:
        seen.update(dict.fromkeys(caps.get(set_name) or []))
    return list(seen)


def _arch_syscalls(arch: str) -> list[dict[str, Any]]:
    if arch in ("arm", "arm64"):
        return [_allow("breakpoint", "cacheflush", "set_tls")]
    if arch in ("amd64", "x32"):
        return [_allow("arch_prctl"), _allow("modify_ldt")]
    if arch == "x86":
        return [_allow("modify_ldt")]
    if arch in ("s390", "s390x"):
        return [_allow("s390_pci_mmio_read", "s390_pci_mmio_write", "s390_runtime_instr")]
    return []


def default_profile(spec: Mapping[str, Any], arch: str | None = None) -> dict[str, Any]:
    """Build the default seccomp profile for ``spec`` on ``arch``.

    ``arch`` is a GOARCH-style name such as ``amd64``; it defaults to the
    architecture of this machine.
    """
    if arch is None:
        arch = native_arch()

    syscalls = [
        _allow(*_BASE_SYSCALLS),
        _allow(
            "personality",
            args=[
                _arg(0, 0x0, OP_EQUAL_TO),
                _arg(0, 0x0008, OP_EQUAL_TO),
                _arg(0, 0xFFFFFFFF, OP_EQUAL_TO),
            ],
        ),
    ]

    caps = _capabilities(spec)
    syscalls.extend(
        _allow(*_CAPABILITY_SYSCALLS[cap]) for cap in caps if cap in _CAPABILITY_SYSCALLS
    )

    if "CAP_SYS_ADMIN" not in caps:
        namespace_flags = (
            CLONE_NEW_NS
            | CLONE_NEW_UTS
            | CLONE_NEW_IPC
            | CLONE_NEW_USER
            | CLONE_NEW_PID
            | CLONE_NEW_NET
        )
        syscalls.append(
            _allow(
                "clone",
                args=[_arg(_CLONE_FLAGS_INDEX, namespace_flags, OP_MASKED_EQUAL)],
            )
        )

    syscalls.extend(_arch_syscalls(arch))

    return {
        "defaultAction": ACT_ERRNO,
        "architectures": arches(arch),
        "syscalls": syscalls,
    }