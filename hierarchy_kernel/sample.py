"""
Hierarchy Kernel — Sample Organization

A small fixed org chart used by the test suites and `dump_org.py sample`.

    D1 "Engineering"   head H1   managers M1, M4   members U1 (M1), U2
    D2 "Sales"         head H3   managers M2       members H2, U3 (M2)
    D3 "Research"      (no head) managers M3       members U4 (M3)
    hr1                role hr, no department
"""

from __future__ import annotations

from .domain_types import DEPARTMENT_HEAD, MANAGER, MEMBER, HierarchyState
from .state import add_department, create_initial_state, enroll_person


def build_sample_org(with_spare_manager: bool = True) -> HierarchyState:
    state = create_initial_state()
    add_department(state, "D1", "Engineering")
    add_department(state, "D2", "Sales")
    add_department(state, "D3", "Research")

    enroll_person(state, "H1", DEPARTMENT_HEAD, "D1", name="Hana One")
    enroll_person(state, "M1", MANAGER, "D1", name="Mara One")
    if with_spare_manager:
        enroll_person(state, "M4", MANAGER, "D1", name="Milo Four")
    enroll_person(state, "U1", MEMBER, "D1", manager_id="M1", name="Uma One")
    enroll_person(state, "U2", MEMBER, "D1", name="Uli Two")

    enroll_person(state, "H3", DEPARTMENT_HEAD, "D2", name="Hugo Three")
    enroll_person(state, "M2", MANAGER, "D2", name="Mina Two")
    enroll_person(state, "H2", MEMBER, "D2", name="Hal Two")
    enroll_person(state, "U3", MEMBER, "D2", manager_id="M2", name="Ugo Three")

    enroll_person(state, "M3", MANAGER, "D3", name="Max Three")
    enroll_person(state, "U4", MEMBER, "D3", manager_id="M3", name="Una Four")

    enroll_person(state, "hr1", "hr", name="Hedda Resources")
    return state
