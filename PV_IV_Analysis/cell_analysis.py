import numpy as np
import logging
from dataclasses import dataclass, asdict
from PV_IV_Analysis.conditions import STC
from PV_IV_Analysis.errors import ValidationError

logger = logging.getLogger(__name__)

# IV_curve arrays are 2 x N: row 0 voltage (V), row 1 current (A)
# current is negative in the power generating quadrant

@dataclass(frozen=True)
class PerformanceParams:
    Isc: float = 0.0
    Voc: float = 0.0
    Pmax: float = 0.0
    FF: float = 0.0
    Efficiency: float = 0.0
    Vmpp: float = 0.0
    Impp: float = 0.0
    def as_dict(self):
        return asdict(self)

def make_IV_curve(voltage,current):
    V = np.asarray(voltage,dtype=float).reshape(-1)
    I = np.asarray(current,dtype=float).reshape(-1)
    if V.size != I.size:
        raise ValidationError("Voltage and current arrays must have the same length",
                              {"voltage_points":V.size,"current_points":I.size})
    return np.vstack([V,I])

def sort_IV(IV_curve):
    # stable, so equal voltages keep their measured order
    indices = np.argsort(IV_curve[0,:],kind="stable")
    return IV_curve[:,indices]

def get_Isc(IV_curve):
    # signed current of largest magnitude, first occurrence wins
    if IV_curve.shape[1]==0:
        return 0.0
    index = np.argmax(np.abs(IV_curve[1,:]))
    return float(IV_curve[1,index])

def get_Voc(sorted_IV_curve):
    if sorted_IV_curve.shape[1]==0:
        return 0.0
    index = np.argmin(np.abs(sorted_IV_curve[1,:]))
    return float(sorted_IV_curve[0,index])

def get_power(sorted_IV_curve):
    return sorted_IV_curve[0,:]*sorted_IV_curve[1,:]

def get_Pmax(sorted_IV_curve, return_op_point=False):
    """
    Power sample of largest magnitude on a voltage sorted curve, with the
    first index reaching it as the operating point. Returns signed values.
    """
    if sorted_IV_curve.shape[1]==0:
        if return_op_point:
            return 0.0, 0.0, 0.0
        return 0.0
    power = get_power(sorted_IV_curve)
    index = np.argmax(np.abs(power))
    max_power = float(power[index])
    if return_op_point:
        return max_power, float(sorted_IV_curve[0,index]), float(sorted_IV_curve[1,index])
    return max_power

def get_FF(Pmax,Isc,Voc):
    if Isc==0 or Voc==0:
        return 0.0
    FF = abs(Pmax)/(abs(Isc)*abs(Voc))
    return float(min(max(FF,0.0),1.0))

def get_efficiency(Pmax,conditions=STC):
    # not capped at 1
    incident_power = conditions.incident_power()
    if incident_power <= 0:
        return 0.0
    return float(max(abs(Pmax)/incident_power,0.0))

def extract_performance(voltage,current,conditions=STC):
    IV_curve = make_IV_curve(voltage,current)
    if IV_curve.shape[1]==0:
        logger.warning("Empty I-V sample; returning zeroed performance parameters")
        return PerformanceParams()
    sorted_IV_curve = sort_IV(IV_curve)
    Isc = get_Isc(IV_curve)
    Voc = get_Voc(sorted_IV_curve)
    Pmax, Vmpp, Impp = get_Pmax(sorted_IV_curve,return_op_point=True)
    return PerformanceParams(Isc=abs(Isc),
                             Voc=abs(Voc),
                             Pmax=abs(Pmax),
                             FF=get_FF(Pmax,Isc,Voc),
                             Efficiency=get_efficiency(Pmax,conditions),
                             Vmpp=abs(Vmpp),
                             Impp=abs(Impp))
