"""
SafePrag - Testes de Reconciliação de Dispositivos
"""
import pytest

from safeprag.core.exceptions import ReportDataError
from safeprag.models.schemas import (
    CONFORME,
    DeviceGroup,
    DevicePestCount,
    DeviceStatus,
    InspectedDevice,
    PestEntry,
)
from safeprag.services.device_reconciliation import (
    eligible_devices,
    filter_pest_counts,
    format_device_sequence,
    group_inspected_devices,
    is_eligible_for_pest_count,
    reconcile_device_group,
    status_percentage,
)


def status_by_name(group: DeviceGroup) -> dict:
    return {s.name: s for s in group.status}


class TestReconcileDeviceGroup:
    """Conforme = quantidade - demais status."""

    def test_conforme_is_complement(self):
        group = DeviceGroup(
            quantity=10,
            status=[
                DeviceStatus(name="Refil substituído", devices=(1, 2, 3)),
                DeviceStatus(name="Danificado", devices=(7,)),
            ],
        )
        result = reconcile_device_group(group)
        conforme = status_by_name(result)[CONFORME]
        assert conforme.count == 6
        assert conforme.devices == (4, 5, 6, 8, 9, 10)
        assert result.status[0].name == CONFORME

    def test_stale_conforme_is_replaced(self):
        """Conforme informado pelo app é recalculado."""
        group = DeviceGroup(
            quantity=4,
            status=[
                DeviceStatus(name=CONFORME, count=4, devices=(1, 2, 3, 4)),
                DeviceStatus(name="Praga encontrada", devices=(2,)),
            ],
        )
        result = reconcile_device_group(group)
        conforme = status_by_name(result)[CONFORME]
        assert conforme.count == 3
        assert conforme.devices == (1, 3, 4)
        assert sum(s.count for s in result.status) == group.quantity

    def test_all_devices_flagged_has_no_conforme(self):
        group = DeviceGroup(quantity=2, status=[DeviceStatus(name="Praga encontrada", devices=(1, 2))])
        result = reconcile_device_group(group)
        assert CONFORME not in status_by_name(result)

    def test_count_above_quantity_is_rejected(self):
        group = DeviceGroup(quantity=2, status=[DeviceStatus(name="Danificado", count=3)])
        with pytest.raises(ReportDataError):
            reconcile_device_group(group)

    def test_device_in_two_statuses_is_rejected(self):
        """Um mesmo dispositivo não pode ter dois status não conformes."""
        group = DeviceGroup(
            quantity=10,
            status=[
                DeviceStatus(name="Refil substituído", devices=(3,)),
                DeviceStatus(name="Praga encontrada", devices=(3,)),
            ],
        )
        with pytest.raises(ReportDataError) as exc_info:
            reconcile_device_group(group)
        assert exc_info.value.context["device_number"] == 3

    def test_custom_device_numbers(self):
        group = DeviceGroup(
            quantity=3,
            device_numbers=(10, 11, 12),
            status=[DeviceStatus(name="Refil substituído", devices=(11,))],
        )
        conforme = status_by_name(reconcile_device_group(group))[CONFORME]
        assert conforme.devices == (10, 12)

    def test_input_is_not_mutated(self):
        group = DeviceGroup(quantity=3, status=[DeviceStatus(name="Danificado", devices=(1,))])
        reconcile_device_group(group)
        assert [s.name for s in group.status] == ["Danificado"]


class TestGroupInspectedDevices:

    def test_groups_by_type_in_order(self):
        devices = [
            InspectedDevice(type="Porta-isca", number=1, status=("Conforme",)),
            InspectedDevice(type="Armadilha luminosa", number=1, status=("Refil substituído",)),
            InspectedDevice(type="Porta-isca", number=2, status=("Praga encontrada",)),
        ]
        groups = group_inspected_devices(devices)
        assert [g.type for g in groups] == ["Porta-isca", "Armadilha luminosa"]
        assert groups[0].quantity == 2
        assert groups[0].device_numbers == (1, 2)
        assert status_by_name(groups[0])["Praga encontrada"].devices == (2,)


class TestPestCountEligibility:

    @pytest.mark.parametrize("statuses,expected", [
        (["Refil substituído"], True),
        (["Atrativo biológico substituído"], True),
        (["Praga encontrada"], True),
        (["Conforme"], False),
        (["Praga encontrada", "Inativo"], False),
        ([], False),
    ])
    def test_is_eligible(self, statuses, expected):
        assert is_eligible_for_pest_count(statuses) is expected

    def test_filter_keeps_only_eligible_and_nonzero(self):
        groups = [reconcile_device_group(DeviceGroup(
            quantity=4,
            status=[
                DeviceStatus(name="Refil substituído", devices=(1,)),
                DeviceStatus(name="Praga encontrada", devices=(2,)),
            ],
        ))]
        counts = [
            DevicePestCount(device_number=1, pests=[PestEntry(name="Mosca", count=3), PestEntry(name="Barata", count=0)]),
            DevicePestCount(device_number=2, pests=[PestEntry(name="Mosca", count=0)]),
            DevicePestCount(device_number=3, pests=[PestEntry(name="Mosca", count=5)]),
        ]
        result = filter_pest_counts(counts, eligible_devices(groups))
        assert [c.device_number for c in result] == [1]
        assert [p.name for p in result[0].pests] == ["Mosca"]

    def test_inspected_inactive_status_removes_eligibility(self):
        groups = [DeviceGroup(quantity=1, status=[DeviceStatus(name="Praga encontrada", devices=(1,))])]
        inspected = [InspectedDevice(number=1, status=("Inativo",))]
        assert eligible_devices(groups, inspected) == set()


class TestFormatting:

    def test_format_device_sequence(self):
        assert format_device_sequence([8, 1, 2, 3, 5, 7]) == "1-3, 5, 7-8"
        assert format_device_sequence([]) == ""

    def test_status_percentage(self):
        assert status_percentage(1, 3) == 33.3
        assert status_percentage(1, 0) is None
