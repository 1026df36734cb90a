import logging
from PV_IV_Analysis.conditions import load_conditions
from PV_IV_Analysis.measurement import IV_measurement
from PV_IV_Analysis.utilities import SAMPLE_DATASETS, format_report

def main(display=True, sample="realistic"):
    logging.basicConfig(level=logging.INFO, format='%(asctime)s - %(levelname)s - %(message)s')
    conditions = load_conditions()

    # measured curve, current negative while the cell generates power
    data = SAMPLE_DATASETS[sample]
    measurement = IV_measurement(data["voltage"], data["current"], conditions=conditions, tag=sample)

    # Isc, Voc, Pmax, FF, efficiency, then Rs, Rsh, n, Io and the fit quality
    result = measurement.analyze()
    measurement.simulate(num_points=100)

    if display:
        print(format_report(result))
        if result.fallback_reasons:
            print("defaults used for:", ", ".join(result.fallback_reasons))
        # measured curve against the single diode model
        measurement.plot()
        # power against voltage with the maximum power point
        measurement.plot_PV(show=True)

    return result

if __name__ == "__main__":
    main()
