# Copyright (c) 2025 Arista Networks, Inc.
# Use of this source code is governed by the Apache License 2.0
# that can be found in the LICENSE file.
"""IP configuration state predicates used by IP allocation selection."""

from typing import Callable, Dict, List, Union

from models import IPConfigState, IPConfigurationStatus

IPConfigStatePredicate = Callable[[IPConfigurationStatus], bool]


def _ip_config_state_predicate(test: IPConfigState) -> IPConfigStatePredicate:
    """Return a predicate that is true when a status is in state test."""

    def predicate(ip_config: IPConfigurationStatus) -> bool:
        return ip_config.state == test

    predicate.__name__ = f"state_{test.value}"
    return predicate


# Keyed by the state's string value so plain names and enum members both hit
_FILTERS: Dict[str, IPConfigStatePredicate] = {
    state.value: _ip_config_state_predicate(state)
    for state in IPConfigState
}

STATE_ALLOCATED = _FILTERS[IPConfigState.ALLOCATED.value]
STATE_AVAILABLE = _FILTERS[IPConfigState.AVAILABLE.value]
STATE_PENDING_PROGRAMMING = _FILTERS[IPConfigState.PENDING_PROGRAMMING.value]
STATE_PENDING_RELEASE = _FILTERS[IPConfigState.PENDING_RELEASE.value]


def matches_any_ip_config_state(ip_config: IPConfigurationStatus,
                                *predicates: IPConfigStatePredicate) -> bool:
    return any(predicate(ip_config) for predicate in predicates)


def match_any_ip_config_state(
        statuses: Dict[str, IPConfigurationStatus],
        *predicates: IPConfigStatePredicate) -> List[IPConfigurationStatus]:
    """
    Filter statuses down to those matching at least one predicate.

    The result follows the mapping's iteration order, which callers must not
    rely on. An empty mapping or no predicates yields an empty list.
    """
    if not statuses or not predicates:
        return []
    return [
        status for status in statuses.values()
        if matches_any_ip_config_state(status, *predicates)
    ]


def predicates_for_states(
        *states: Union[IPConfigState, str]) -> List[IPConfigStatePredicate]:
    """
    Map states to their predicates.

    Unrecognized states are dropped without error, so they simply never
    match anything.
    """
    predicates = []
    for state in states:
        key = state.value if isinstance(state, IPConfigState) else state
        predicate = _FILTERS.get(key)
        if predicate is not None:
            predicates.append(predicate)
    return predicates
