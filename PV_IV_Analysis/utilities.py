import re
import logging
import numpy as np
from pathlib import Path
from PV_IV_Analysis.errors import ValidationError

logger = logging.getLogger(__name__)

SAMPLE_DATASETS = {
    "realistic": {
        "name": "Realistic Solar Cell",
        "voltage": [0, 0.05, 0.1, 0.15, 0.2, 0.25, 0.3, 0.35, 0.4, 0.45, 0.5, 0.55, 0.6],
        "current": [-0.5, -0.495, -0.485, -0.47, -0.45, -0.425, -0.395, -0.36, -0.32, -0.27, -0.2, -0.1, 0],
    },
    "ideal": {
        "name": "Ideal Solar Cell",
        "voltage": [0, 0.1, 0.2, 0.3, 0.4, 0.5, 0.6],
        "current": [-1, -0.95, -0.88, -0.78, -0.65, -0.45, 0],
    },
    "experimental": {
        "name": "Experimental Data",
        "voltage": [0.05, 0.1, 0.15, 0.2, 0.25, 0.3, 0.35, 0.4, 0.45, 0.5, 0.55],
        "current": [-0.48, -0.46, -0.44, -0.42, -0.39, -0.36, -0.32, -0.27, -0.2, -0.1, -0.01],
    },
}

LEADING_NUMBER = re.compile(r"^[+-]?(\d+\.?\d*|\.\d+)([eE][+-]?\d+)?")
NUMBER_PATTERN = re.compile(r"-?\d+\.?\d*(?:[eE][+-]?\d+)?")

def parse_number(token):
    # leading numeric part of the token, None if there is none
    match = LEADING_NUMBER.match(token.strip())
    if match is None:
        return None
    return float(match.group(0))

def _numbers(tokens):
    values = [parse_number(token) for token in tokens]
    return [value for value in values if value is not None]

def parse_IV_text(text):
    """
    Voltage-current pairs from delimited text, one pair per line. Comma
    separated values are tried first, then whitespace separated ones; only
    the first two numbers of a line are used and lines with fewer are skipped.
    """
    voltage = []
    current = []
    for line in text.splitlines():
        if not line.strip():
            continue
        values = _numbers(line.split(","))
        if len(values) < 2:
            values = _numbers(line.split())
        if len(values) >= 2:
            voltage.append(values[0])
            current.append(values[1])
    return np.array(voltage,dtype=float), np.array(current,dtype=float)

def extract_IV_from_numbers(text,min_numbers=4):
    # every number in the text, read as consecutive (voltage, current) pairs
    matches = NUMBER_PATTERN.findall(text)
    if len(matches) < min_numbers:
        raise ValidationError("Input does not contain enough numerical data",{"numbers_found":len(matches)})
    num_pairs = len(matches)//2
    values = np.array([float(m) for m in matches[:2*num_pairs]])
    return values[0::2], values[1::2]

def load_IV_file(path):
    path = Path(path)
    suffix = path.suffix.lower()
    if suffix in [".csv",".txt"]:
        voltage, current = parse_IV_text(path.read_text(encoding="utf-8",errors="replace"))
        if voltage.size==0:
            raise ValidationError("No valid voltage-current pairs found in file. Expected columns: Voltage, Current",
                                  {"path":str(path)})
    elif suffix==".pdf":
        voltage, current = extract_IV_from_numbers(path.read_bytes().decode("latin-1"))
    else:
        raise ValidationError("Please upload a PDF, CSV, or TXT file",{"path":str(path)})
    logger.info("Loaded %d voltage-current pairs from %s",voltage.size,path)
    return voltage, current

def format_report(result):
    return "\n".join([
        "Solar Cell Analysis Results",
        "=================================",
        "",
        "PERFORMANCE PARAMETERS:",
        f"- Short-Circuit Current (Isc): {result.Isc:.6f} A",
        f"- Open-Circuit Voltage (Voc): {result.Voc:.6f} V",
        f"- Maximum Power (Pmax): {result.Pmax:.6f} W",
        f"- Fill Factor (FF): {result.FF*100:.2f}%",
        f"- Efficiency (η): {result.Efficiency*100:.2f}%",
        f"- Voltage at Max Power (Vmpp): {result.Vmpp:.6f} V",
        f"- Current at Max Power (Impp): {result.Impp:.6f} A",
        "",
        "SINGLE-DIODE MODEL PARAMETERS:",
        f"- Series Resistance (Rs): {result.Rs:.4f} Ω",
        f"- Shunt Resistance (Rsh): {result.Rsh:.2f} Ω",
        f"- Ideality Factor (n): {result.n:.4f}",
        f"- Reverse Saturation Current (I₀): {result.Io:.3e} A",
        "",
        "MODEL FIT QUALITY:",
        f"- R² Value: {result.fitQuality:.6f}",
    ])

def format_dashboard(result):
    return {
        "Isc": f"{result.Isc:.4f}",
        "Voc": f"{result.Voc:.4f}",
        "Pmax": f"{result.Pmax:.4f}",
        "FF": f"{result.FF*100:.2f}",
        "Efficiency": f"{result.Efficiency*100:.2f}",
        "Vmpp": f"{result.Vmpp:.4f}",
        "Impp": f"{result.Impp:.4f}",
        "Rs": f"{result.Rs:.4f}",
        "Rsh": f"{result.Rsh:.2f}",
        "n": f"{result.n:.4f}",
        "Io": f"{result.Io:.2e}",
        "fitQuality": f"{result.fitQuality:.4f}",
    }

def write_report(result,path):
    path = Path(path)
    path.write_text(format_report(result),encoding="utf-8")
    return path
