import io

import pytest

from slotmap.config import DisplayOptions
from slotmap.core_utils import redirect_output
from slotmap.devices import DeviceCorrelator, DeviceGroup
from slotmap.error_handling import ClassificationMismatch, DeviceNotFound
from slotmap.passthrough import PassthroughChecker
from slotmap.pci_address import PciAddress
from slotmap.report import Reporter
from slotmap.slots import SlotResolver
from slotmap.sysfs import SysfsInspector


@pytest.fixture
def output():
    stream = io.StringIO()
    with redirect_output(stream):
        yield stream


def make_reporter(runner, sysfs_tree, vm_config_dir, options=None):
    return Reporter(
        correlator=DeviceCorrelator(runner=runner),
        sysfs=SysfsInspector(runner=runner, pci_devices_path=sysfs_tree["pci"], net_path=sysfs_tree["net"]),
        checker=PassthroughChecker(runner=runner, vm_config_dir=vm_config_dir),
        options=options,
    )


def group(*texts):
    ports = [PciAddress.parse(t) for t in texts]
    return DeviceGroup(base=ports[0].base, ports=ports)


class TestShowSlot:
    def test_prints_block_and_address(self, runner, output, sysfs_tree, vm_config_dir):
        record = SlotResolver(runner=runner).resolve_slot("3")
        make_reporter(runner, sysfs_tree, vm_config_dir).show_slot(record)
        text = output.getvalue()
        assert "===== Slot 3 Details =====" in text
        assert "Designation: PCIE Slot 3" in text
        assert "PCI Bus Address: 01:00.0" in text


class TestRequireNetworkDevice:
    def test_network_device(self, runner, sysfs_tree, vm_config_dir):
        descriptor = make_reporter(runner, sysfs_tree, vm_config_dir).require_network_device(PciAddress.parse("02:00.0"))
        assert descriptor.class_description == "Network controller"

    def test_not_a_network_device(self, runner, sysfs_tree, vm_config_dir):
        with pytest.raises(ClassificationMismatch):
            make_reporter(runner, sysfs_tree, vm_config_dir).require_network_device(PciAddress.parse("00:14.0"))

    def test_unknown_device(self, runner, sysfs_tree, vm_config_dir):
        runner.add(["lspci", "-s", "0000:09:00.0"], stdout="")
        with pytest.raises(DeviceNotFound):
            make_reporter(runner, sysfs_tree, vm_config_dir).require_network_device(PciAddress.parse("09:00.0"))


class TestProcessGroup:
    def test_full_report(self, runner, output, sysfs_tree, vm_config_dir):
        assert make_reporter(runner, sysfs_tree, vm_config_dir).process_group(group("01:00.0", "01:00.1"))
        text = output.getvalue()
        assert "######## Group for base [01:00] ########" in text
        assert "Common details (from first port: 01:00.0):" in text
        assert "Kernel driver in use: igb" in text
        assert "Interface: eno1, MAC Address: a0:36:9f:00:00:01" in text
        assert "Driver in use: igb" in text
        assert "--- Port 1 (01:00.0) - Mapping & VM passthrough details ---" in text
        assert "--- Port 2 (01:00.1) - Mapping & VM passthrough details ---" in text
        assert "i350-p0" in text
        assert "No PCI mappings found for 01:00.1." in text
        assert "102.conf:# hostpci was 01:00.1 before the move" in text
        assert "######## End of Group for base [01:00] ########" in text

    def test_bridge_note(self, runner, output, sysfs_tree, vm_config_dir):
        runner.add(["ip", "-o", "link", "show", "eno1"], stdout="2: eno1: <UP> mtu 1500 master vmbr0 state UP\n")
        make_reporter(runner, sysfs_tree, vm_config_dir).process_group(group("01:00.0"))
        assert "-> Interface eno1 is bridged on vmbr0." in output.getvalue()

    def test_device_without_interfaces(self, runner, output, sysfs_tree, vm_config_dir):
        make_reporter(runner, sysfs_tree, vm_config_dir).process_group(group("02:00.0"))
        text = output.getvalue()
        assert "No network interfaces associated with this device." in text
        assert "Driver in use: vfio-pci" in text
        assert "100.conf:hostpci0: 0000:02:00.0,pcie=1" in text

    def test_non_network_group_is_skipped(self, runner, output, sysfs_tree, vm_config_dir):
        assert not make_reporter(runner, sysfs_tree, vm_config_dir).process_group(group("03:00.0"))
        text = output.getvalue()
        assert "SLOTMAP-E404" in text
        assert "Skipping group for base [03:00]." in text
        assert "Mapping & VM passthrough details" not in text


class TestDisplayOptions:
    def test_only_driver(self, runner, output, sysfs_tree, vm_config_dir):
        options = DisplayOptions.from_flags(driver=True)
        make_reporter(runner, sysfs_tree, vm_config_dir, options).process_group(group("01:00.0"))
        text = output.getvalue()
        assert "Driver in use: igb" in text
        assert "Verbose lspci details" not in text
        assert "Network Interface(s) Found" not in text
        assert "Checking PCI resource mappings" not in text
        assert "Checking VM configuration" not in text
        assert not any(call[0] == "pvesh" for call in runner.calls)

    def test_mapping_and_vms(self, runner, output, sysfs_tree, vm_config_dir):
        options = DisplayOptions.from_flags(mapping=True, vms=True)
        make_reporter(runner, sysfs_tree, vm_config_dir, options).process_group(group("02:00.0"))
        text = output.getvalue()
        assert "Driver in use" not in text
        assert "ax200" in text
        assert "100.conf" in text


class TestProcessGroups:
    def test_batch_continues_past_failing_group(self, runner, output, sysfs_tree, vm_config_dir):
        groups = [group("03:00.0"), group("01:00.0", "01:00.1"), group("02:00.0")]
        failures = make_reporter(runner, sysfs_tree, vm_config_dir).process_groups(groups)
        text = output.getvalue()
        assert failures == 1
        assert "Group for base [01:00]" in text
        assert "Group for base [02:00]" in text
        assert "Completed device checks." in text

    def test_empty_batch(self, runner, output, sysfs_tree, vm_config_dir):
        assert make_reporter(runner, sysfs_tree, vm_config_dir).process_groups([]) == 0
        assert "Completed device checks." in output.getvalue()
