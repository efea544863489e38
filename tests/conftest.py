"""
Shared fixtures for the EDTimeline test suite.
"""
import json
from pathlib import Path

import pytest

from edtimeline.core.model import TimelineConfig

DATA_DIR = Path(__file__).parent / "data"


@pytest.fixture
def data_dir():
    return DATA_DIR


@pytest.fixture
def golden_bundle_path():
    return DATA_DIR / "emergency_bundle.json"


@pytest.fixture
def golden_bundle(golden_bundle_path):
    """The emergency visit bundle as a parsed dict."""
    return json.loads(golden_bundle_path.read_text(encoding="utf-8"))


@pytest.fixture
def golden_snapshot():
    return json.loads((DATA_DIR / "emergency_snapshot.json").read_text(encoding="utf-8"))


@pytest.fixture
def config():
    return TimelineConfig()


@pytest.fixture
def make_bundle():
    """Build a Bundle dict from bare resources."""
    def _make(*resources, bundle_id="test-bundle"):
        return {
            "resourceType": "Bundle",
            "id": bundle_id,
            "type": "collection",
            "entry": [{"resource": r} for r in resources],
        }
    return _make


@pytest.fixture
def make_observation():
    """Build an Observation with a coded name and optional quantity/time."""
    def _make(name, value=None, unit=None, when=None, obs_id=None, **extra):
        resource = {"resourceType": "Observation", "code": {"text": name}}
        if obs_id:
            resource["id"] = obs_id
        if value is not None:
            resource["valueQuantity"] = {"value": value}
            if unit:
                resource["valueQuantity"]["unit"] = unit
        if when:
            resource["effectiveDateTime"] = when
        resource.update(extra)
        return resource
    return _make
