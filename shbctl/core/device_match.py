"""Target device filtering and selection."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from shbctl.core.errors import InvalidSelectionError, NoTargetDeviceFoundError
from shbctl.core.model import DiscoveredDevice, SelectionDefault

IntegerPrompt = Callable[[str, int], int | None]
LOGGER = logging.getLogger(__name__)


def _ignore(_: str) -> None:
    return None


def filter_targets(devices: Sequence[DiscoveredDevice], target_identifier: str) -> list[DiscoveredDevice]:
    return [device for device in devices if device.identifier == target_identifier]


def default_index(count: int, policy: SelectionDefault) -> int:
    if policy is SelectionDefault.FIRST:
        return 0
    return count - 1


def select_device(
    devices: Sequence[DiscoveredDevice],
    target_identifier: str,
    *,
    prompt: IntegerPrompt,
    default_policy: SelectionDefault = SelectionDefault.LAST,
    notify: Callable[[str], None] = _ignore,
) -> DiscoveredDevice:
    """Pick the device to connect to.

    A single match is returned without asking. Several matches are listed in
    discovery order and the user is prompted for an index.
    """
    candidates = filter_targets(devices, target_identifier)
    if not candidates:
        raise NoTargetDeviceFoundError(
            f"No Simionic G1000 devices (identifier: {target_identifier}) found."
        )

    if len(candidates) == 1:
        notify(f"One {target_identifier} device found. Auto-selecting it.")
        return candidates[0]

    notify("Simionic G1000 devices:")
    for index, device in enumerate(candidates):
        notify(f"[{index}] {device.identifier} [{device.address}]")

    selection = prompt("Select device index", default_index(len(candidates), default_policy))
    if selection is None or not 0 <= selection < len(candidates):
        raise InvalidSelectionError(
            f"Invalid selection. Expected an index between 0 and {len(candidates) - 1}."
        )

    chosen = candidates[selection]
    LOGGER.debug("User selected index %d: %s", selection, chosen.address)
    return chosen
