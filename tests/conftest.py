"""
Pytest configuration and shared fixtures.
"""

import pytest
from typing import Dict, List

from rostersync.logger import get_logger

# Create the shared logger before any module grabs it, so tests write no log files.
get_logger(enable_file=False, enable_console=False)

from rostersync.config import SyncConfig  # noqa: E402
from rostersync.models import Entity  # noqa: E402
from rostersync.stages import DEFAULT_STAGE_ORDER, StageVocabulary  # noqa: E402


@pytest.fixture
def vocabulary() -> StageVocabulary:
    return StageVocabulary(DEFAULT_STAGE_ORDER)


@pytest.fixture
def config() -> SyncConfig:
    """Default configuration (min label: Data Room Accessed / NDA Executed)."""
    return SyncConfig()


@pytest.fixture
def options() -> Dict[str, str]:
    """Registry dropdown options for every default stage plus Passed."""
    opts = {label: f"opt-{i}" for i, label in enumerate(DEFAULT_STAGE_ORDER)}
    opts["Passed"] = "opt-passed"
    return opts


@pytest.fixture
def registry_entities() -> List[Entity]:
    """A small registry: three organizations and one person entry."""
    return [
        Entity(
            id=101,
            name="Bental Group Inc",
            type_tag="company",
            associations=("Matthew Lee",),
            current_label="Invited to Data Room",
        ),
        Entity(
            id=102,
            name="Acme",
            type_tag="company",
            current_label="",
        ),
        Entity(
            id=103,
            name="Northwind Partners",
            type_tag="company",
            associations=("Sarah Chen", "Robert Diaz"),
            current_label="Passed",
        ),
        Entity(
            id=104,
            name="",
            type_tag="person",
            first_name="Jonathan",
            last_name="Smith",
            associations=("Smith Family Office",),
            current_label="Sub Docs Sent",
        ),
    ]


@pytest.fixture
def roster_csv() -> str:
    """Roster export with one row per interesting outcome."""
    return (
        "Investor Name,Contacts,Subscription Status,Data room access detail,Prospect Status\n"
        "Bental Group,Matt Lee,,Matt Lee: Mar 3 2024,\n"
        "\"Acme Capital, LLC\",,Countersigned by all parties,,\n"
        "Northwind Partners,Sarah Chen,Signed,,\n"
        "Smith Family Office,Jon Smith,,not yet accessed; not yet accessed,Contacted\n"
        "Unknown Holdings,Zed Zed,Signed,,\n"
    )
