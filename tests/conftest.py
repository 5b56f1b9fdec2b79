import json
import os
import subprocess

import pytest

from slotmap.config import CONFIG, DEFAULT_CONFIG
from slotmap.error_handling import ToolUnavailable


DMIDECODE_OUTPUT = """\
# dmidecode 3.4
Getting SMBIOS data from sysfs.
SMBIOS 3.2.0 present.

Handle 0x0020, DMI type 9, 17 bytes
System Slot Information
\tDesignation: PCIE Slot 1
\tType: x16 PCI Express 3 x16
\tCurrent Usage: Available
\tLength: Long
\tID: 1
\tCharacteristics:
\t\t3.3 V is provided
\t\tPME signal is supported
\tBus Address: 0000:ff:00.0

Handle 0x0021, DMI type 9, 17 bytes
System Slot Information
\tDesignation: PCIE Slot 3
\tType: x8 PCI Express 3 x8
\tCurrent Usage: In Use
\tLength: Long
\tID: 3
\tBus Address: 0000:01:00.0

Handle 0x0022, DMI type 9, 17 bytes
System Slot Information
\tDesignation: PCIE Slot 10
\tType: x4 PCI Express 3 x4
\tCurrent Usage: In Use
\tID: 10
\tBus Address: 0000:03:00.0

Handle 0x0023, DMI type 9, 17 bytes
System Slot Information
\tDesignation: M.2 Slot 4
\tType: x4 M.2 Socket 3
\tCurrent Usage: Available
\tID: 4

"""

LSPCI_OUTPUT = """\
00:00.0 Host bridge: Intel Corporation Xeon E3-1200 v6/7th Gen Core Processor Host Bridge/DRAM Registers (rev 05)
00:14.0 USB controller: Intel Corporation 200 Series/Z370 Chipset Family USB 3.0 xHCI Controller
01:00.0 Ethernet controller: Intel Corporation I350 Gigabit Network Connection (rev 01)
01:00.1 Ethernet controller: Intel Corporation I350 Gigabit Network Connection (rev 01)
02:00.0 Network controller: Intel Corporation Wi-Fi 6 AX200 (rev 1a)
03:00.0 Non-Volatile memory controller: Samsung Electronics Co Ltd NVMe SSD Controller SM981/PM981/PM983
"""

LSPCI_VERBOSE_0100 = """\
01:00.0 Ethernet controller: Intel Corporation I350 Gigabit Network Connection (rev 01)
\tSubsystem: Intel Corporation Ethernet Server Adapter I350-T2
\tFlags: bus master, fast devsel, latency 0, IRQ 16
\tKernel driver in use: igb
\tKernel modules: igb
"""

PVESH_MAPPINGS = """\
┌─────────┬────────────────────────────────────────────────┐
│ id      │ map                                            │
╞═════════╪════════════════════════════════════════════════╡
│ i350-p0 │ ["id=8086:1521,node=pve1,path=0000:01:00.0"]  │
├─────────┼────────────────────────────────────────────────┤
│ ax200   │ ["id=8086:2723,node=pve1,path=0000:02:00.0"]  │
└─────────┴────────────────────────────────────────────────┘
"""


class FakeRunner:
    """
    Stands in for core_utils.run_command.

    Answers are keyed by the exact argument tuple. An answer is either a
    (stdout, stderr, returncode) tuple or a callable taking the command and
    returning one. Commands without an answer behave like a missing binary.
    """

    def __init__(self):
        self.responses = {}
        self.calls = []

    def add(self, cmd, stdout="", stderr="", returncode=0):
        self.responses[tuple(cmd)] = (stdout, stderr, returncode)
        return self

    def add_handler(self, cmd, handler):
        self.responses[tuple(cmd)] = handler
        return self

    def __call__(self, cmd_list, check=True, timeout=None):
        cmd = tuple(str(part) for part in cmd_list)
        self.calls.append(list(cmd))
        if cmd not in self.responses:
            raise ToolUnavailable(f"Command not found: '{cmd[0]}'")

        answer = self.responses[cmd]
        if callable(answer):
            answer = answer(cmd)
        stdout, stderr, returncode = answer

        if check and returncode != 0:
            raise subprocess.CalledProcessError(returncode, list(cmd), output=stdout, stderr=stderr)
        return subprocess.CompletedProcess(list(cmd), returncode, stdout, stderr)


class FakePvesh:
    """A pvesh mapping store that rejects duplicate ids the way the real API does."""

    def __init__(self):
        self.mappings = {}

    def create(self, cmd):
        mapping_id = cmd[cmd.index("--id") + 1]
        if mapping_id in self.mappings:
            return ("", f"create failed - mapping '{mapping_id}' already exists\n", 255)
        self.mappings[mapping_id] = cmd[cmd.index("--map") + 1]
        return ("", "", 0)


@pytest.fixture
def runner():
    fake = FakeRunner()
    fake.add(["dmidecode", "-t", "slot"], stdout=DMIDECODE_OUTPUT)
    fake.add(["lspci"], stdout=LSPCI_OUTPUT)
    for line in LSPCI_OUTPUT.splitlines():
        address = line.split()[0]
        fake.add(["lspci", "-s", f"0000:{address}"], stdout=line + "\n")
        fake.add(["lspci", "-v", "-s", f"0000:{address}"], stdout=line + "\n\tFlags: fast devsel\n")
    fake.add(["lspci", "-v", "-s", "0000:01:00.0"], stdout=LSPCI_VERBOSE_0100)
    fake.add(["pvesh", "get", "/cluster/mapping/pci"], stdout=PVESH_MAPPINGS)
    return fake


def _write(path, content):
    os.makedirs(os.path.dirname(path), exist_ok=True)
    with open(path, "w") as f:
        f.write(content)


@pytest.fixture
def sysfs_tree(tmp_path):
    """
    A fake /sys with the I350 ports bound to igb (eno1, eno2) and the AX200
    bound to vfio-pci without interfaces.
    """
    pci = tmp_path / "sys" / "bus" / "pci" / "devices"
    net = tmp_path / "sys" / "class" / "net"
    drivers = tmp_path / "sys" / "bus" / "pci" / "drivers"

    def add_device(address, vendor, device, driver=None, interfaces=()):
        device_dir = pci / address
        _write(str(device_dir / "vendor"), vendor + "\n")
        _write(str(device_dir / "device"), device + "\n")
        if driver:
            os.makedirs(drivers / driver, exist_ok=True)
            os.symlink(drivers / driver, device_dir / "driver")
        for name, mac in interfaces:
            os.makedirs(device_dir / "net" / name, exist_ok=True)
            _write(str(net / name / "address"), mac + "\n")

    add_device("0000:01:00.0", "0x8086", "0x1521", "igb", [("eno1", "a0:36:9f:00:00:01")])
    add_device("0000:01:00.1", "0x8086", "0x1521", "igb", [("eno2", "a0:36:9f:00:00:02")])
    add_device("0000:02:00.0", "0x8086", "0x2723", "vfio-pci")
    add_device("0000:03:00.0", "0x144d", "0xa808", "nvme")

    return {"pci": str(pci), "net": str(net)}


@pytest.fixture
def vm_config_dir(tmp_path):
    root = tmp_path / "etc" / "pve" / "qemu-server"
    _write(str(root / "100.conf"),
           "boot: order=scsi0\ncores: 4\nhostpci0: 0000:02:00.0,pcie=1\nmemory: 8192\n")
    _write(str(root / "101.conf"),
           "cores: 2\nhostpci0: mapping=i350-p0\nmemory: 2048\n")
    _write(str(root / "102.conf"),
           "cores: 2\n# hostpci was 01:00.1 before the move\nmemory: 2048\n")
    return str(root)


@pytest.fixture(autouse=True)
def isolated_config(tmp_path, monkeypatch):
    """Point configuration and logs at a temporary directory for every test."""
    config_file = tmp_path / "slotmap.json"
    config_file.write_text(json.dumps({"LOG_DIR": str(tmp_path / "logs")}))
    monkeypatch.setenv("SLOTMAP_CONFIG", str(config_file))
    yield str(config_file)
    CONFIG.clear()
    CONFIG.update(DEFAULT_CONFIG)
