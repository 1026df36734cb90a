import numpy as np
import numbers
import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple
from PV_IV_Analysis.conditions import STC

logger = logging.getLogger(__name__)

NEIGHBOURHOOD_FRACTION = 0.15
MIN_NEIGHBOURHOOD_POINTS = 2
SLOPE_DI_THRESHOLD = 1e-8
CURRENT_THRESHOLD = 1e-15
LOG_RATIO_THRESHOLD = 1e-8
EXP_ARG_LIMIT = 100
EXPONENTIAL_REGION_FRACTION = 0.7  # of Voc

DEFAULT_RS = 0.05
DEFAULT_RSH = 1000.0
DEFAULT_N = 1.2
DEFAULT_IO = 1e-12

RS_BOUNDS = (0.001, 5.0)
RSH_BOUNDS = (10.0, 100000.0)
N_BOUNDS = (0.5, 3.0)
IO_BOUNDS = (1e-18, 1e-6)

class FallbackReason(str, Enum):
    TOO_FEW_POINTS = "too_few_points"
    NO_VALID_SLOPE = "no_valid_slope"
    CURRENT_BELOW_THRESHOLD = "current_below_threshold"
    FLAT_LOG_RATIO = "flat_log_ratio"
    EXPONENT_OVERFLOW = "exponent_overflow"
    INVALID_INPUT = "invalid_input"
    ESTIMATION_FAILED = "estimation_failed"

@dataclass(frozen=True)
class Estimate():
    # value is the computed quantity, or the default when fallback_reason is set
    value: object
    fallback_reason: Optional[FallbackReason] = None
    @property
    def is_fallback(self):
        return self.fallback_reason is not None

@dataclass(frozen=True)
class DiodeModelParams:
    Rs: float = DEFAULT_RS
    Rsh: float = DEFAULT_RSH
    n: float = 1.3
    Io: float = DEFAULT_IO
    fitQuality: float = 0.0
    fallback_reasons: Tuple[str, ...] = field(default=(),compare=False)
    def as_dict(self):
        return {"Rs":self.Rs,"Rsh":self.Rsh,"n":self.n,"Io":self.Io,"fitQuality":self.fitQuality}

# returned whenever the estimation as a whole cannot complete
FALLBACK_DIODE_PARAMS = DiodeModelParams(Rs=0.05,Rsh=1000.0,n=1.3,Io=1e-12,fitQuality=0.0,
                                         fallback_reasons=("model:"+FallbackReason.ESTIMATION_FAILED.value,))

def _get(params,key):
    if isinstance(params,Mapping):
        return params[key]
    return getattr(params,key)

def _clip(value,bounds):
    return float(min(max(value,bounds[0]),bounds[1]))

def neighbourhood_size(num_points,fraction=NEIGHBOURHOOD_FRACTION,min_points=MIN_NEIGHBOURHOOD_POINTS):
    # round half up
    return max(min_points,int(np.floor(num_points*fraction+0.5)))

def select_neighbourhood(voltage,target_V,fraction=NEIGHBOURHOOD_FRACTION,min_points=MIN_NEIGHBOURHOOD_POINTS):
    """
    Indices of the samples whose voltage lies closest to target_V, returned
    in ascending voltage order. Distance ties keep the measured order.
    """
    voltage = np.asarray(voltage,dtype=float)
    num_points = neighbourhood_size(voltage.size,fraction,min_points)
    distance = np.abs(voltage-target_V)
    indices = np.argsort(distance,kind="stable")[:num_points]
    order = np.lexsort((indices,voltage[indices]))
    return indices[order]

def mean_pairwise_slope(voltage,current,sign=1.0):
    # consecutive dV/dI, pairs with |dI| <= threshold skipped
    dV = np.diff(voltage)
    dI = np.diff(current)
    valid = np.abs(dI) > SLOPE_DI_THRESHOLD
    if not np.any(valid):
        return None
    return float(np.mean(sign*dV[valid]/dI[valid]))

def Rs_extraction(voltage,current,Voc):
    """Series resistance from the samples nearest open circuit."""
    voltage = np.asarray(voltage,dtype=float)
    current = np.asarray(current,dtype=float)
    indices = select_neighbourhood(voltage,Voc)
    if indices.size < 2:
        return Estimate(DEFAULT_RS,FallbackReason.TOO_FEW_POINTS)
    Rs = mean_pairwise_slope(voltage[indices],current[indices],sign=-1.0)
    if Rs is None:
        return Estimate(DEFAULT_RS,FallbackReason.NO_VALID_SLOPE)
    return Estimate(_clip(Rs,RS_BOUNDS))

def Rshunt_extraction(voltage,current):
    """Shunt resistance from the samples nearest short circuit."""
    voltage = np.asarray(voltage,dtype=float)
    current = np.asarray(current,dtype=float)
    indices = select_neighbourhood(voltage,0.0)
    if indices.size < 2:
        return Estimate(DEFAULT_RSH,FallbackReason.TOO_FEW_POINTS)
    Rshunt = mean_pairwise_slope(voltage[indices],current[indices],sign=1.0)
    if Rshunt is None:
        return Estimate(DEFAULT_RSH,FallbackReason.NO_VALID_SLOPE)
    return Estimate(_clip(Rshunt,RSH_BOUNDS))

def ideality_extraction(voltage,current,Voc,conditions=STC):
    """
    Ideality factor n and saturation current Io from the exponential knee,
    the samples above 0.7*Voc carrying positive current. Uses the lowest and
    highest voltage samples of that region:
        n  = dV*q / (k_B*T*ln(I2/I1))
        Io = I1 / exp(q*V1/(n*k_B*T))
    Returns an Estimate whose value is the tuple (n, Io).
    """
    voltage = np.asarray(voltage,dtype=float)
    current = np.asarray(current,dtype=float)
    kT = conditions.k_B*conditions.temperature
    n = DEFAULT_N
    Io = DEFAULT_IO
    mask = (voltage > Voc*EXPONENTIAL_REGION_FRACTION) & (current > 0)
    indices = np.where(mask)[0]
    if indices.size < 2:
        return Estimate((n,Io),FallbackReason.TOO_FEW_POINTS)
    indices = indices[np.argsort(voltage[indices],kind="stable")]
    V1, V2 = voltage[indices[0]], voltage[indices[-1]]
    I1, I2 = abs(current[indices[0]]), abs(current[indices[-1]])
    if I1 <= CURRENT_THRESHOLD or I2 <= CURRENT_THRESHOLD:
        return Estimate((n,Io),FallbackReason.CURRENT_BELOW_THRESHOLD)
    log_ratio = np.log(I2/I1)
    if abs(log_ratio) <= LOG_RATIO_THRESHOLD:
        return Estimate((n,Io),FallbackReason.FLAT_LOG_RATIO)
    n = _clip((V2-V1)*conditions.q/(kT*log_ratio),N_BOUNDS)
    arg = conditions.q*V1/(n*kT)
    if arg >= EXP_ARG_LIMIT:
        return Estimate((n,Io),FallbackReason.EXPONENT_OVERFLOW)
    Io = _clip(I1/np.exp(arg),IO_BOUNDS)
    return Estimate((n,Io))

def evaluate_diode_model(V,reference_I,params,conditions=STC):
    """
    Single diode current at voltage V, with reference_I setting the series
    resistance drop:
        I = Isc - Io*(exp(q*(V+I_ref*Rs)/(n*k_B*T)) - 1) - (V+I_ref*Rs)/Rsh
    params needs Rs, Rsh, n, Io and Isc, as a mapping or attributes.
    Exponent arguments >= 100 are not evaluated, the exponential is taken
    as infinite so the prediction is -inf.
    """
    Rs = _get(params,"Rs")
    Vd = V + reference_I*Rs
    arg = conditions.q*Vd/(_get(params,"n")*conditions.k_B*conditions.temperature)
    if arg >= EXP_ARG_LIMIT:
        exp_term = np.inf
    else:
        exp_term = np.exp(arg)
    return float(_get(params,"Isc") - _get(params,"Io")*(exp_term-1) - Vd/_get(params,"Rsh"))

def model_fit_quality(voltage,current,params,conditions=STC):
    """Coefficient of determination of the model over every sample, in [0,1]."""
    voltage = np.asarray(voltage,dtype=float)
    current = np.asarray(current,dtype=float)
    if current.size == 0:
        return 0.0
    # each sample's own current is the series drop reference, no implicit solve
    prediction = np.array([evaluate_diode_model(V,I,params,conditions) for V, I in zip(voltage,current)])
    residual_SS = np.sum((current-prediction)**2)
    total_SS = np.sum((current-np.mean(current))**2)
    if total_SS == 0:
        return 0.0
    R2 = 1 - residual_SS/total_SS
    if np.isnan(R2):
        return 0.0
    return _clip(R2,(0.0,1.0))

def _estimate_diode_model(voltage,current,perf,conditions):
    Isc = _get(perf,"Isc")
    Voc = _get(perf,"Voc")
    Rs_estimate = Rs_extraction(voltage,current,Voc)
    Rsh_estimate = Rshunt_extraction(voltage,current)
    n_Io_estimate = ideality_extraction(voltage,current,Voc,conditions)
    fallback_reasons = []
    for phase, estimate in [("Rs",Rs_estimate),("Rsh",Rsh_estimate),("n_Io",n_Io_estimate)]:
        if estimate.is_fallback:
            logger.debug("%s estimation fell back to defaults: %s",phase,estimate.fallback_reason.value)
            fallback_reasons.append(phase+":"+estimate.fallback_reason.value)
    Rs = Rs_estimate.value
    Rsh = Rsh_estimate.value
    n, Io = n_Io_estimate.value
    Io = _clip(Io,IO_BOUNDS)
    fit_quality = model_fit_quality(voltage,current,{"Rs":Rs,"Rsh":Rsh,"n":n,"Io":Io,"Isc":Isc},conditions)
    return DiodeModelParams(Rs=max(0.0,Rs),
                            Rsh=max(0.0,Rsh),
                            n=max(0.1,n),
                            Io=max(1e-20,Io),
                            fitQuality=_clip(fit_quality,(0.0,1.0)),
                            fallback_reasons=tuple(fallback_reasons))

def estimate_diode_model(voltage,current,perf,conditions=STC):
    """
    Single diode parameters Rs, Rsh, n, Io and the fit quality R2 of the
    resulting model. Never raises: unusable input or any numerical failure
    returns FALLBACK_DIODE_PARAMS.
    """
    try:
        voltage = np.asarray(voltage,dtype=float).reshape(-1)
        current = np.asarray(current,dtype=float).reshape(-1)
        if voltage.size < 2 or voltage.size != current.size:
            logger.warning("Diode model needs two or more paired samples, got %d voltages and %d currents",
                           voltage.size,current.size)
            return DiodeModelParams(fallback_reasons=("model:"+FallbackReason.INVALID_INPUT.value,))
        for key in ["Isc","Voc"]:
            if not isinstance(_get(perf,key),numbers.Real):
                raise TypeError(f"{key} must be a real number")
        with np.errstate(over="ignore",divide="ignore",invalid="ignore"):
            return _estimate_diode_model(voltage,current,perf,conditions)
    except Exception:
        logger.warning("Diode model estimation failed; returning fallback parameters",exc_info=True)
        return FALLBACK_DIODE_PARAMS
