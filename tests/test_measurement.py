import numpy as np
import pytest
from matplotlib import pyplot as plt

from PV_IV_Analysis.cell_analysis import extract_performance
from PV_IV_Analysis.data_fitting import estimate_diode_model, evaluate_diode_model
from PV_IV_Analysis.errors import DegenerateIVError, ValidationError
from PV_IV_Analysis.measurement import (
    AnalysisResult,
    IV_measurement,
    analyze_IV,
    simulate_IV_curve,
    validate_IV_data,
)

RESULT_KEYS = {"Isc", "Voc", "Pmax", "FF", "Efficiency", "Vmpp", "Impp", "Rs", "Rsh", "n", "Io", "fitQuality"}


def test_analyze_ideal_sample(ideal_sample):
    result = analyze_IV(*ideal_sample)
    assert result.Isc == pytest.approx(1.0)
    assert result.Voc == pytest.approx(0.6)
    assert result.FF == pytest.approx(0.4333, abs=1e-4)
    assert result.n == 1.2
    assert result.Io == 1e-12
    assert set(result.as_dict()) == RESULT_KEYS


def test_analyze_matches_core_functions(bundled_sample):
    perf = extract_performance(*bundled_sample)
    diode = estimate_diode_model(*bundled_sample, perf)
    result = analyze_IV(*bundled_sample)
    assert result == AnalysisResult.merge(perf, diode)
    assert result.performance() == perf
    assert result.diode_model() == diode


def test_analyze_rejects_degenerate_curve():
    with pytest.raises(DegenerateIVError, match="Unable to determine Isc and Voc"):
        analyze_IV([0.0, 0.1, 0.2], [0.0, 0.0, 0.0])
    # current never approaches zero away from V=0
    with pytest.raises(DegenerateIVError):
        analyze_IV([0.0, 0.1], [-0.001, -0.5])


@pytest.mark.parametrize(
    "voltage, current, message",
    [
        ([], [], "at least one"),
        ([0.0, 0.1], [-0.5], "same length"),
        ([0.0], [-0.5], "At least 2"),
        ([0.0, float("nan")], [-0.5, 0.0], "Invalid voltage"),
        ([0.0, 0.1], [-0.5, float("inf")], "Invalid current"),
        (None, [-0.5, 0.0], "required"),
    ],
)
def test_validate_IV_data(voltage, current, message):
    with pytest.raises(ValidationError, match=message):
        validate_IV_data(voltage, current)


def test_validate_IV_data_reports_bad_indices():
    with pytest.raises(ValidationError) as excinfo:
        validate_IV_data([0.0, 0.1, 0.2], [-0.5, float("nan"), float("nan")])
    assert excinfo.value.details == {"bad_indices": [1, 2]}


def test_simulate_IV_curve_scalar_and_vector_reference():
    params = {"Rs": 0.1, "Rsh": 200.0, "n": 1.4, "Io": 1e-9, "Isc": 0.5}
    voltage = [0.0, 0.2, 0.4]
    curve = simulate_IV_curve(voltage, params)
    assert curve.shape == (2, 3)
    assert curve[1, 1] == pytest.approx(evaluate_diode_model(0.2, 0.0, params))
    curve = simulate_IV_curve(voltage, params, reference_current=[0.5, 0.4, 0.3])
    assert curve[1, 2] == pytest.approx(evaluate_diode_model(0.4, 0.3, params))
    with pytest.raises(ValidationError):
        simulate_IV_curve(voltage, params, reference_current=[0.5, 0.4])


def test_IV_measurement_key_parameters(ideal_sample):
    measurement = IV_measurement(*ideal_sample, tag="ideal")
    assert measurement.key_parameters["Pmax"] == pytest.approx(0.26)
    assert set(measurement.key_parameters) == set(IV_measurement.keys)
    assert "Voc" in str(measurement)


def test_IV_measurement_sorts_input():
    measurement = IV_measurement([0.6, 0.0, 0.3], [0.0, -1.0, -0.8])
    assert measurement.measurement_data[0, :].tolist() == [0.0, 0.3, 0.6]
    assert measurement.measurement_data[1, :].tolist() == [-1.0, -0.8, 0.0]


def test_IV_measurement_simulate_and_errors(ideal_sample):
    measurement = IV_measurement(*ideal_sample)
    simulated = measurement.simulate(num_points=25)
    assert measurement.result is not None
    assert simulated.shape == (2, 25)
    assert simulated[0, 0] == pytest.approx(0.0)
    assert simulated[0, -1] == pytest.approx(0.6)
    errors = measurement.get_error_vector()
    assert errors.shape == (7,)
    # R2 = 1 - sum(errors**2)/TSS, clamped
    current = measurement.measurement_data[1, :]
    R2 = 1 - np.sum(errors ** 2) / np.sum((current - current.mean()) ** 2)
    assert measurement.result.fitQuality == pytest.approx(min(max(R2, 0.0), 1.0))


def test_IV_measurement_plot(ideal_sample):
    measurement = IV_measurement(*ideal_sample)
    measurement.simulate()
    ax = measurement.plot()
    assert len(ax.get_lines()) == 2
    assert ax.get_xlabel() == "Voltage (V)"
    plt.close("all")


def test_IV_measurement_plot_PV(ideal_sample):
    measurement = IV_measurement(*ideal_sample)
    ax = measurement.plot_PV()
    assert ax.get_ylabel() == "Power (W)"
    voltage, power = ax.get_lines()[0].get_data()
    assert voltage.tolist() == pytest.approx([0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6])
    assert power.tolist() == pytest.approx([0, -0.095, -0.176, -0.234, -0.26, -0.225, 0])
    # maximum power point marked at Vmpp
    offsets = ax.collections[0].get_offsets()
    assert offsets[0].tolist() == pytest.approx([0.4, -0.26])
    measurement.simulate()
    ax = measurement.plot_PV()
    assert len(ax.get_lines()) == 2
    plt.close("all")
