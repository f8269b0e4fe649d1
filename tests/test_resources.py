import pytest

from ocigen.generator import Generator
from ocigen.resources import ResourcesMixin


def _new():
    return Generator(config=None, host_specific=False)


def test_generator_has_resource_methods():
    gen = Generator(config=None, host_specific=False)
    assert isinstance(gen, ResourcesMixin)
    gen.set_linux_pids_limit = None
    gen.set_linux_resources_pids_limit(7)
    assert gen.config["linux"]["resources"]["pids"] == {"limit": 7}


def test_cgroups_path_and_mount_label():
    gen = Generator(config=None, host_specific=False)
    gen.set_linux_cgroups_path("/my/cgroup")
    gen.set_linux_mount_label("label_a")
    assert gen.config["linux"]["cgroupsPath"] == "/my/cgroup"
    assert gen.config["linux"]["mountLabel"] == "label_a"


def test_intel_rdt_schema():
    gen = Generator(config=None, host_specific=False)
    gen.set_linux_intel_rdt_l3_cache_schema("L3:0=ff")
    assert gen.config["linux"]["intelRdt"] == {"l3CacheSchema": "L3:0=ff"}


def test_init_cpu_creates_section():
    gen = Generator(config=None, host_specific=False)
    gen.init_config_linux_resources_cpu()
    assert gen.config["linux"]["resources"]["cpu"] == {}


def test_cpu_setters():
    gen = Generator(config=None, host_specific=False)
    gen.set_linux_resources_cpu_shares(512)
    gen.set_linux_resources_cpu_quota(-1)
    gen.set_linux_resources_cpu_period(100000)
    gen.set_linux_resources_cpu_realtime_runtime(950)
    gen.set_linux_resources_cpu_realtime_period(1000)
    gen.set_linux_resources_cpu_cpus("0-3")
    gen.set_linux_resources_cpu_mems("0")
    cpu = gen.config["linux"]["resources"]["cpu"]
    assert cpu == {
        "shares": 512,
        "quota": -1,
        "period": 100000,
        "realtimeRuntime": 950,
        "realtimePeriod": 1000,
        "cpus": "0-3",
        "mems": "0",
    }


def test_weight_device_add_replace_and_drop():
    gen = Generator(config=None, host_specific=False)
    gen.add_linux_resources_block_io_weight_device(8, 0, 300)
    gen.add_linux_resources_block_io_leaf_weight_device(8, 0, 200)
    devices = gen.config["linux"]["resources"]["blockIO"]["weightDevice"]
    assert devices == [{"major": 8, "minor": 0, "weight": 300, "leafWeight": 200}]

    gen.drop_linux_resources_block_io_leaf_weight_device(8, 0)
    assert gen.config["linux"]["resources"]["blockIO"]["weightDevice"] == [
        {"major": 8, "minor": 0, "weight": 300}
    ]

    gen.drop_linux_resources_block_io_weight_device(8, 0)
    assert gen.config["linux"]["resources"]["blockIO"]["weightDevice"] == []


def test_drop_weight_keeps_leaf_weight():
    gen = Generator(config=None, host_specific=False)
    gen.add_linux_resources_block_io_leaf_weight_device(8, 16, 200)
    gen.add_linux_resources_block_io_weight_device(8, 16, 400)
    gen.drop_linux_resources_block_io_weight_device(8, 16)
    devices = gen.config["linux"]["resources"]["blockIO"]["weightDevice"]
    assert devices == [{"major": 8, "minor": 16, "leafWeight": 200}]


def test_block_io_weights():
    gen = Generator(config=None, host_specific=False)
    gen.set_linux_resources_block_io_weight(500)
    gen.set_linux_resources_block_io_leaf_weight(250)
    block_io = gen.config["linux"]["resources"]["blockIO"]
    assert block_io["weight"] == 500
    assert block_io["leafWeight"] == 250


@pytest.mark.parametrize(
    "suffix,key",
    [
        ("read_bps", "throttleReadBpsDevice"),
        ("read_iops", "throttleReadIOPSDevice"),
        ("write_bps", "throttleWriteBpsDevice"),
        ("write_iops", "throttleWriteIOPSDevice"),
    ],
)
def test_throttle_devices(suffix, key):
    gen = Generator(config=None, host_specific=False)
    add = getattr(gen, f"add_linux_resources_block_io_throttle_{suffix}_device")
    drop = getattr(gen, f"drop_linux_resources_block_io_throttle_{suffix}_device")
    add(8, 0, 1000)
    add(8, 1, 2000)
    add(8, 0, 3000)
    assert gen.config["linux"]["resources"]["blockIO"][key] == [
        {"major": 8, "minor": 0, "rate": 3000},
        {"major": 8, "minor": 1, "rate": 2000},
    ]
    drop(8, 0)
    assert gen.config["linux"]["resources"]["blockIO"][key] == [
        {"major": 8, "minor": 1, "rate": 2000}
    ]


def test_drop_on_empty_config_is_noop():
    gen = Generator(config=None, host_specific=False)
    gen.drop_linux_resources_block_io_throttle_read_bps_device(8, 0)
    gen.drop_linux_resources_hugepage_limit("2MB")
    gen.drop_linux_resources_network_priorities("eth0")
    gen.remove_linux_sysctl("net.ipv4.ip_forward")
    gen.clear_linux_sysctl()
    assert gen.config is None


def test_hugepage_limits():
    gen = Generator(config=None, host_specific=False)
    gen.add_linux_resources_hugepage_limit("2MB", 100)
    gen.add_linux_resources_hugepage_limit("1GB", 4)
    gen.add_linux_resources_hugepage_limit("2MB", 200)
    assert gen.config["linux"]["resources"]["hugepageLimits"] == [
        {"pageSize": "2MB", "limit": 200},
        {"pageSize": "1GB", "limit": 4},
    ]
    gen.drop_linux_resources_hugepage_limit("2MB")
    assert gen.config["linux"]["resources"]["hugepageLimits"] == [
        {"pageSize": "1GB", "limit": 4}
    ]


def test_memory_setters():
    gen = Generator(config=None, host_specific=False)
    gen.set_linux_resources_memory_limit(1024)
    gen.set_linux_resources_memory_reservation(512)
    gen.set_linux_resources_memory_swap(2048)
    gen.set_linux_resources_memory_kernel(64)
    gen.set_linux_resources_memory_kernel_tcp(32)
    gen.set_linux_resources_memory_swappiness(60)
    gen.set_linux_resources_memory_disable_oom_killer(True)
    assert gen.config["linux"]["resources"]["memory"] == {
        "limit": 1024,
        "reservation": 512,
        "swap": 2048,
        "kernel": 64,
        "kernelTCP": 32,
        "swappiness": 60,
        "disableOOMKiller": True,
    }


def test_network_priorities_and_class_id():
    gen = Generator(config=None, host_specific=False)
    gen.set_linux_resources_network_class_id(1048577)
    gen.add_linux_resources_network_priorities("eth0", 500)
    gen.add_linux_resources_network_priorities("lo", 1000)
    gen.add_linux_resources_network_priorities("eth0", 700)
    network = gen.config["linux"]["resources"]["network"]
    assert network["classID"] == 1048577
    assert network["priorities"] == [
        {"name": "eth0", "priority": 700},
        {"name": "lo", "priority": 1000},
    ]
    gen.drop_linux_resources_network_priorities("lo")
    assert gen.config["linux"]["resources"]["network"]["priorities"] == [
        {"name": "eth0", "priority": 700}
    ]


def test_pids_limit():
    gen = Generator(config=None, host_specific=False)
    gen.set_linux_resources_pids_limit(42)
    assert gen.config["linux"]["resources"]["pids"] == {"limit": 42}


def test_sysctl_round_trip():
    gen = Generator(config=None, host_specific=False)
    gen.add_linux_sysctl("net.ipv4.ip_forward", "1")
    gen.add_linux_sysctl("kernel.msgmax", "8192")
    gen.remove_linux_sysctl("net.ipv4.ip_forward")
    assert gen.config["linux"]["sysctl"] == {"kernel.msgmax": "8192"}
    gen.clear_linux_sysctl()
    assert gen.config["linux"]["sysctl"] == {}


def test_uid_and_gid_mappings():
    gen = Generator(config=None, host_specific=False)
    gen.add_linux_uid_mapping(1000, 0, 65536)
    gen.add_linux_gid_mapping(2000, 0, 100)
    linux = gen.config["linux"]
    assert linux["uidMappings"] == [{"containerID": 0, "hostID": 1000, "size": 65536}]
    assert linux["gidMappings"] == [{"containerID": 0, "hostID": 2000, "size": 100}]
    gen.clear_linux_uid_mappings()
    gen.clear_linux_gid_mappings()
    assert gen.config["linux"]["uidMappings"] == []
    assert gen.config["linux"]["gidMappings"] == []


@pytest.mark.parametrize(
    "mode",
    ["", "private", "rprivate", "slave", "rslave", "shared", "rshared", "unbindable", "runbindable"],
)
def test_root_propagation_valid(mode):
    gen = Generator(config=None, host_specific=False)
    gen.set_linux_root_propagation(mode)
    assert gen.config["linux"]["rootfsPropagation"] == mode


def test_root_propagation_invalid():
    gen = Generator(config=None, host_specific=False)
    with pytest.raises(ValueError, match="rootfs-propagation"):
        gen.set_linux_root_propagation("bogus")
    assert gen.config is None


def test_resources_device_add_and_remove():
    gen = Generator(config=None, host_specific=False)
    gen.add_linux_resources_device(False, "", None, None, "rwm")
    gen.add_linux_resources_device(True, "c", 1, 3, "rw")
    assert gen.config["linux"]["resources"]["devices"] == [
        {"allow": False, "access": "rwm"},
        {"allow": True, "type": "c", "major": 1, "minor": 3, "access": "rw"},
    ]

    gen.remove_linux_resources_device(True, "c", 1, 4, "rw")
    assert len(gen.config["linux"]["resources"]["devices"]) == 2

    gen.remove_linux_resources_device(True, "c", 1, 3, "rw")
    assert gen.config["linux"]["resources"]["devices"] == [{"allow": False, "access": "rwm"}]

    gen.remove_linux_resources_device(False, "", None, None, "rwm")
    assert gen.config["linux"]["resources"]["devices"] == []