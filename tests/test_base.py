import io
import json

import pytest

from ocigen.base import ExportOptions, GeneratorBase


def test_setters_create_config_on_demand():
    g = GeneratorBase()
    g.set_hostname("box")
    g.set_root_path("rootfs")
    g.set_root_readonly(True)
    assert g.config["hostname"] == "box"
    assert g.config["root"] == {"path": "rootfs", "readonly": True}


def test_version_setters():
    g = GeneratorBase()
    g.set_version("1.0.0")
    assert g.config["ociVersion"] == "1.0.0"
    g.set_oci_version("1.0.1")
    assert g.config["ociVersion"] == "1.0.1"


def test_clearing_on_missing_config_is_a_no_op():
    g = GeneratorBase()
    g.clear_annotations()
    g.remove_annotation("a")
    g.remove_hostname()
    g.clear_process_env()
    g.clear_process_rlimits()
    g.remove_process_rlimits("RLIMIT_NOFILE")
    g.clear_process_additional_gids()
    assert g.config is None


def test_annotations():
    g = GeneratorBase()
    g.add_annotation("a", "1")
    g.add_annotation("b", "2")
    g.remove_annotation("a")
    assert g.config["annotations"] == {"b": "2"}
    g.clear_annotations()
    assert g.config["annotations"] == {}


def test_remove_hostname():
    g = GeneratorBase({"hostname": "box"})
    g.remove_hostname()
    assert g.config["hostname"] == ""


def test_add_process_env_from_empty():
    g = GeneratorBase()
    g.add_process_env("k1", "v1")
    g.add_process_env("k2", "v2")
    assert g.config["process"]["env"] == ["k1=v1", "k2=v2"]


def test_add_process_env_overrides():
    g = GeneratorBase({"process": {"env": ["TERM=xterm"]}})
    g.add_process_env("k1", "v1")
    g.add_process_env("k2", "v2")
    g.add_process_env("k3", "v3")
    g.add_process_env("k2", "v4")
    assert g.config["process"]["env"] == ["TERM=xterm", "k1=v1", "k2=v4", "k3=v3"]


def test_add_process_env_empty_name_ignored():
    g = GeneratorBase({"process": {}})
    g.add_process_env("", "")
    assert "env" not in g.config["process"]


def test_add_multiple_process_env():
    g = GeneratorBase({"process": {"env": ["TERM=xterm"]}})
    g.add_multiple_process_env(["k1=v1", "k2=v2", "k3=v3", "k2=v4"])
    assert g.config["process"]["env"] == ["TERM=xterm", "k1=v1", "k2=v4", "k3=v3"]


def test_add_multiple_process_env_empty_list():
    g = GeneratorBase({"process": {}})
    g.add_multiple_process_env([])
    assert g.config["process"].get("env") is None


def test_clear_process_env_resets_cache():
    g = GeneratorBase()
    g.add_process_env("k1", "v1")
    g.clear_process_env()
    assert g.config["process"]["env"] == []
    g.add_process_env("k1", "v2")
    assert g.config["process"]["env"] == ["k1=v2"]


def test_rlimits_add_update_remove():
    g = GeneratorBase()
    g.add_process_rlimits("RLIMIT_NOFILE", 1024, 1024)
    g.add_process_rlimits("RLIMIT_CORE", 10, 5)
    g.add_process_rlimits("RLIMIT_NOFILE", 2048, 512)
    assert g.config["process"]["rlimits"] == [
        {"type": "RLIMIT_NOFILE", "hard": 2048, "soft": 512},
        {"type": "RLIMIT_CORE", "hard": 10, "soft": 5},
    ]
    g.remove_process_rlimits("RLIMIT_NOFILE")
    assert [r["type"] for r in g.config["process"]["rlimits"]] == ["RLIMIT_CORE"]
    g.clear_process_rlimits()
    assert g.config["process"]["rlimits"] == []


def test_additional_gids_are_unique():
    g = GeneratorBase()
    g.add_process_additional_gid(10)
    g.add_process_additional_gid(20)
    g.add_process_additional_gid(10)
    assert g.config["process"]["user"]["additionalGids"] == [10, 20]
    g.clear_process_additional_gids()
    assert g.config["process"]["user"]["additionalGids"] == []


def test_process_user_and_misc_settings():
    g = GeneratorBase()
    g.set_process_uid(1000)
    g.set_process_gid(1001)
    g.set_process_username("someone")
    g.set_process_cwd("/work")
    g.set_process_terminal(True)
    g.set_process_no_new_privileges(True)
    g.set_process_apparmor_profile("prof")
    g.set_process_selinux_label("label")
    g.set_process_args(["sh", "-c", "true"])
    g.set_process_oom_score_adj(-500)
    process = g.config["process"]
    assert process["user"] == {"uid": 1000, "gid": 1001, "username": "someone"}
    assert process["cwd"] == "/work"
    assert process["terminal"] is True
    assert process["noNewPrivileges"] is True
    assert process["apparmorProfile"] == "prof"
    assert process["selinuxLabel"] == "label"
    assert process["args"] == ["sh", "-c", "true"]
    assert process["oomScoreAdj"] == -500


def test_console_size():
    g = GeneratorBase()
    g.set_process_console_size(80, 24)
    assert g.config["process"]["consoleSize"] == {"height": 24, "width": 80}


def test_save_round_trip_uses_tabs():
    g = GeneratorBase()
    g.set_hostname("box")
    g.add_process_env("k1", "v1")
    out = io.StringIO()
    g.save(out, ExportOptions())
    text = out.getvalue()
    assert "\n\t" in text
    assert json.loads(text) == g.config


def test_save_drops_empty_linux_section():
    g = GeneratorBase({"ociVersion": "1.0.0", "linux": {"sysctl": {}}})
    out = io.StringIO()
    g.save(out)
    assert json.loads(out.getvalue()) == {"ociVersion": "1.0.0"}
    assert "linux" not in g.config


def test_save_exports_seccomp_only():
    seccomp = {"defaultAction": "SCMP_ACT_ERRNO", "syscalls": []}
    g = GeneratorBase({"ociVersion": "1.0.0", "linux": {"seccomp": seccomp}})
    out = io.StringIO()
    g.save(out, ExportOptions(seccomp=True))
    assert json.loads(out.getvalue()) == seccomp


def test_save_seccomp_without_linux_raises():
    g = GeneratorBase({"ociVersion": "1.0.0"})
    with pytest.raises(ValueError):
        g.save(io.StringIO(), ExportOptions(seccomp=True))


def test_save_to_file(tmp_path):
    g = GeneratorBase()
    g.set_hostname("box")
    path = tmp_path / "config.json"
    g.save_to_file(path, ExportOptions())
    assert json.loads(path.read_text(encoding="utf-8")) == g.config