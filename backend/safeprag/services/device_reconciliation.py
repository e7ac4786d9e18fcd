"""
SafePrag - Reconciliação de Dispositivos

Agrupa dispositivos inspecionados por tipo, recalcula o status "Conforme"
como complemento dos demais status e decide quais dispositivos entram na
contagem de pragas.
"""
from typing import Dict, Iterable, List, Optional, Sequence, Set, Tuple

from safeprag.core.exceptions import ReportDataError
from safeprag.core.logging_config import get_logger
from safeprag.models.schemas import (
    CONFORME,
    INACTIVE_STATUS,
    PEST_COUNT_STATUSES,
    DeviceGroup,
    DevicePestCount,
    DeviceStatus,
    InspectedDevice,
)

log = get_logger(__name__)

DeviceKey = Tuple[str, int]


# =============================================================================
# AGRUPAMENTO
# =============================================================================

def group_inspected_devices(devices: Iterable[InspectedDevice]) -> List[DeviceGroup]:
    """
    Agrupa dispositivos inspecionados por tipo, na ordem em que aparecem.

    A quantidade do grupo é o número de dispositivos daquele tipo; cada
    status acumula contagem e numeração.
    """
    groups: Dict[str, dict] = {}

    for device in devices:
        group = groups.setdefault(device.type, {"numbers": [], "status": {}})
        group["numbers"].append(device.number)
        for status_name in device.status:
            entry = group["status"].setdefault(status_name, [])
            if device.number not in entry:
                entry.append(device.number)

    return [
        DeviceGroup(
            type=device_type,
            quantity=len(group["numbers"]),
            device_numbers=tuple(group["numbers"]),
            status=tuple(
                DeviceStatus(name=name, count=len(numbers), devices=tuple(numbers))
                for name, numbers in group["status"].items()
            ),
        )
        for device_type, group in groups.items()
    ]


# =============================================================================
# RECONCILIAÇÃO
# =============================================================================

def reconcile_device_group(group: DeviceGroup) -> DeviceGroup:
    """
    Recalcula o status "Conforme" de um grupo.

    Conforme.count = quantidade - soma dos demais status
    Conforme.devices = numeração completa - dispositivos com outro status
    """
    others = [s for s in group.status if s.name != CONFORME]
    non_conforming_total = sum(s.count for s in others)

    if non_conforming_total > group.quantity:
        raise ReportDataError(
            f"Status do grupo '{group.type}' somam {non_conforming_total} "
            f"dispositivos, mas a quantidade é {group.quantity}",
            device_type=group.type,
        )

    # um dispositivo tem um único status não conforme
    owners: Dict[int, str] = {}
    for s in others:
        for number in s.devices:
            owner = owners.setdefault(number, s.name)
            if owner != s.name:
                raise ReportDataError(
                    f"Dispositivo {number} do grupo '{group.type}' aparece em "
                    f"'{owner}' e em '{s.name}'",
                    device_type=group.type,
                    device_number=number,
                )

    flagged: Set[int] = set(owners)
    conforming_numbers = tuple(n for n in group.all_device_numbers if n not in flagged)
    conforming_count = group.quantity - non_conforming_total

    statuses = list(others)
    if conforming_count > 0 or conforming_numbers:
        statuses.insert(0, DeviceStatus(
            name=CONFORME,
            count=conforming_count,
            devices=conforming_numbers,
        ))

    return group.model_copy(update={"status": tuple(statuses)})


def reconcile_device_groups(groups: Iterable[DeviceGroup]) -> List[DeviceGroup]:
    return [reconcile_device_group(group) for group in groups]


# =============================================================================
# ELEGIBILIDADE PARA CONTAGEM DE PRAGAS
# =============================================================================

def is_eligible_for_pest_count(statuses: Iterable[str]) -> bool:
    """Refil/atrativo substituído ou praga encontrada, e não inativo."""
    names = {s.strip() for s in statuses}
    if any(name.lower() == INACTIVE_STATUS for name in names):
        return False
    return any(status in names for status in PEST_COUNT_STATUSES)


def device_statuses(
    groups: Sequence[DeviceGroup],
    inspected: Sequence[InspectedDevice] = (),
) -> Dict[DeviceKey, Set[str]]:
    """Status conhecidos de cada dispositivo (tipo, número)."""
    statuses: Dict[DeviceKey, Set[str]] = {}
    for group in groups:
        for status in group.status:
            for number in status.devices:
                statuses.setdefault((group.type, number), set()).add(status.name)
    for device in inspected:
        statuses.setdefault((device.type, device.number), set()).update(device.status)
    return statuses


def eligible_devices(
    groups: Sequence[DeviceGroup],
    inspected: Sequence[InspectedDevice] = (),
) -> Set[DeviceKey]:
    return {
        key for key, names in device_statuses(groups, inspected).items()
        if is_eligible_for_pest_count(names)
    }


def filter_pest_counts(
    pest_counts: Iterable[DevicePestCount],
    eligible: Set[DeviceKey],
) -> List[DevicePestCount]:
    """
    Mantém apenas dispositivos elegíveis com ao menos uma praga contada.

    Pragas com contagem zero são descartadas; a ordem de entrada é mantida.
    """
    result = []
    skipped = 0
    for entry in pest_counts:
        if (entry.device_type, entry.device_number) not in eligible:
            skipped += 1
            continue
        pests = tuple(p for p in entry.pests if p.count > 0)
        if not pests:
            continue
        result.append(entry.model_copy(update={"pests": pests}))

    if skipped:
        log.debug("pest_counts_skipped_ineligible", skipped=skipped)
    return result


# =============================================================================
# FORMATAÇÃO
# =============================================================================

def format_device_sequence(numbers: Iterable[int]) -> str:
    """
    Compacta numeração em intervalos.

    >>> format_device_sequence([1, 2, 3, 5, 7, 8])
    '1-3, 5, 7-8'
    """
    ordered = sorted(set(numbers))
    if not ordered:
        return ""

    parts = []
    start = prev = ordered[0]
    for number in ordered[1:]:
        if number == prev + 1:
            prev = number
            continue
        parts.append(_format_range(start, prev))
        start = prev = number
    parts.append(_format_range(start, prev))
    return ", ".join(parts)


def _format_range(start: int, end: int) -> str:
    return str(start) if start == end else f"{start}-{end}"


def status_percentage(count: int, quantity: int) -> Optional[float]:
    if quantity <= 0:
        return None
    return round(count / quantity * 100, 1)
