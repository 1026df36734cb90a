import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).resolve().parents[1]))

import matplotlib

matplotlib.use("Agg")

import pytest

from PV_IV_Analysis.utilities import SAMPLE_DATASETS


@pytest.fixture
def ideal_sample():
    data = SAMPLE_DATASETS["ideal"]
    return list(data["voltage"]), list(data["current"])


@pytest.fixture(params=sorted(SAMPLE_DATASETS))
def bundled_sample(request):
    data = SAMPLE_DATASETS[request.param]
    return list(data["voltage"]), list(data["current"])


@pytest.fixture(autouse=True)
def _clear_condition_env(monkeypatch):
    """Keep environment overrides from leaking into tests."""
    for name in ["PV_TEMPERATURE", "PV_IRRADIANCE", "PV_CELL_AREA"]:
        monkeypatch.delenv(name, raising=False)
