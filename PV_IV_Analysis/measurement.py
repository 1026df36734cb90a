import numpy as np
import numbers
import logging
from dataclasses import dataclass, field, fields, asdict
from matplotlib import pyplot as plt
from PV_IV_Analysis.conditions import STC
from PV_IV_Analysis.errors import ValidationError, DegenerateIVError
from PV_IV_Analysis.cell_analysis import PerformanceParams, make_IV_curve, sort_IV, get_power, get_Pmax, extract_performance
from PV_IV_Analysis.data_fitting import DiodeModelParams, estimate_diode_model, evaluate_diode_model

logger = logging.getLogger(__name__)

@dataclass(frozen=True)
class AnalysisResult:
    """Flat record of the performance metrics and single diode parameters."""
    Isc: float
    Voc: float
    Pmax: float
    FF: float
    Efficiency: float
    Vmpp: float
    Impp: float
    Rs: float
    Rsh: float
    n: float
    Io: float
    fitQuality: float
    fallback_reasons: tuple = field(default=(),compare=False)

    @classmethod
    def merge(cls,perf,diode):
        return cls(**perf.as_dict(),**diode.as_dict(),fallback_reasons=diode.fallback_reasons)
    def performance(self):
        return PerformanceParams(**{f.name: getattr(self,f.name) for f in fields(PerformanceParams)})
    def diode_model(self):
        return DiodeModelParams(Rs=self.Rs,Rsh=self.Rsh,n=self.n,Io=self.Io,
                                fitQuality=self.fitQuality,fallback_reasons=self.fallback_reasons)
    def as_dict(self):
        dict_ = asdict(self)
        del dict_["fallback_reasons"]
        return dict_

def validate_IV_data(voltage,current,min_points=2):
    if voltage is None or current is None:
        raise ValidationError("Voltage and current data are required")
    V = np.asarray(voltage,dtype=float).reshape(-1)
    I = np.asarray(current,dtype=float).reshape(-1)
    if V.size==0 or I.size==0:
        raise ValidationError("Please enter at least one voltage-current pair")
    if V.size != I.size:
        raise ValidationError("Voltage and current arrays must have the same length",
                              {"voltage_points":V.size,"current_points":I.size})
    if V.size < min_points:
        raise ValidationError(f"Insufficient data points. At least {min_points} voltage-current pairs are required.",
                              {"points":V.size})
    if not np.all(np.isfinite(V)):
        raise ValidationError("Invalid voltage values",{"bad_indices":np.where(~np.isfinite(V))[0].tolist()})
    if not np.all(np.isfinite(I)):
        raise ValidationError("Invalid current values",{"bad_indices":np.where(~np.isfinite(I))[0].tolist()})
    return V, I

def analyze_IV(voltage,current,conditions=STC):
    V, I = validate_IV_data(voltage,current)
    perf = extract_performance(V,I,conditions)
    if perf.Isc <= 0 or perf.Voc <= 0:
        raise DegenerateIVError("Invalid I-V data: Unable to determine Isc and Voc",
                                {"Isc":perf.Isc,"Voc":perf.Voc})
    diode = estimate_diode_model(V,I,perf,conditions)
    result = AnalysisResult.merge(perf,diode)
    logger.info("Analyzed %d samples: Isc=%.4g A, Voc=%.4g V, FF=%.4f, R2=%.4f",
                V.size,result.Isc,result.Voc,result.FF,result.fitQuality)
    return result

def simulate_IV_curve(voltage,params,reference_current=0.0,conditions=STC):
    V = np.asarray(voltage,dtype=float).reshape(-1)
    if isinstance(reference_current,numbers.Number):
        reference_I = np.full_like(V,reference_current)
    else:
        reference_I = np.asarray(reference_current,dtype=float).reshape(-1)
        if reference_I.size != V.size:
            raise ValidationError("Reference current must be a scalar or match the voltage points",
                                  {"voltage_points":V.size,"reference_points":reference_I.size})
    I = np.array([evaluate_diode_model(V_,I_,params,conditions) for V_, I_ in zip(V,reference_I)])
    return np.vstack([V,I])

class IV_measurement():
    keys = ["Isc","Voc","Pmax","FF","Efficiency"]
    def __init__(self,voltage,current,conditions=STC,tag=None):
        V, I = validate_IV_data(voltage,current)
        self.measurement_condition = conditions
        self.measurement_data = sort_IV(make_IV_curve(V,I))
        self.simulated_data = None
        self.tag = tag
        self.key_parameters = {}
        self.result = None
        self.derive_key_parameters(self.measurement_data,self.key_parameters,self.measurement_condition)
    @staticmethod
    def derive_key_parameters(data,key_parameters,conditions):
        perf = extract_performance(data[0,:],data[1,:],conditions)
        for key in IV_measurement.keys:
            key_parameters[key] = getattr(perf,key)
    def analyze(self):
        self.result = analyze_IV(self.measurement_data[0,:],self.measurement_data[1,:],self.measurement_condition)
        return self.result
    def model_params(self):
        if self.result is None:
            self.analyze()
        return {"Rs":self.result.Rs,"Rsh":self.result.Rsh,"n":self.result.n,
                "Io":self.result.Io,"Isc":self.result.Isc}
    def simulate(self,num_points=None,reference_current=0.0):
        if num_points is None:
            voltage = self.measurement_data[0,:]
        else:
            voltage = np.linspace(np.min(self.measurement_data[0,:]),np.max(self.measurement_data[0,:]),num_points)
        self.simulated_data = simulate_IV_curve(voltage,self.model_params(),
                                                reference_current=reference_current,
                                                conditions=self.measurement_condition)
        return self.simulated_data
    def get_error_vector(self):
        # measured minus model, each sample's current as the series drop reference
        model_I = simulate_IV_curve(self.measurement_data[0,:],self.model_params(),
                                    reference_current=self.measurement_data[1,:],
                                    conditions=self.measurement_condition)[1,:]
        return self.measurement_data[1,:] - model_I
    def plot(self,ax=None,show=False):
        if ax is None:
            _, ax = plt.subplots()
        self.plot_func(self.measurement_data,color="blue",ax=ax,label="measured")
        if self.simulated_data is not None:
            self.plot_func(self.simulated_data,color="red",ax=ax,label="model",mark_Pmax=False)
        ax.legend()
        if show:
            plt.show()
        return ax
    @staticmethod
    def plot_func(data,color="black",ax=None,label=None,mark_Pmax=True):
        if ax is None:
            ax = plt.gca()
        finite = np.isfinite(data[1,:])
        ax.plot(data[0,finite],data[1,finite],color=color,label=label)
        if mark_Pmax:
            Pmax, Vmp, Imp = get_Pmax(sort_IV(data),return_op_point=True)
            ax.scatter(Vmp,Imp,color=color)
            ax.text(Vmp,Imp,f" Pmax = {abs(Pmax):.4f} W",fontsize=8)
        ax.set_xlabel("Voltage (V)")
        ax.set_ylabel("Current (A)")
        return ax
    def plot_PV(self,ax=None,show=False):
        if ax is None:
            _, ax = plt.subplots()
        self.plot_PV_func(self.measurement_data,color="blue",ax=ax,label="measured")
        if self.simulated_data is not None:
            self.plot_PV_func(self.simulated_data,color="red",ax=ax,label="model",mark_Pmax=False)
        ax.legend()
        if show:
            plt.show()
        return ax
    @staticmethod
    def plot_PV_func(data,color="black",ax=None,label=None,mark_Pmax=True):
        # power against voltage, signed as measured
        if ax is None:
            ax = plt.gca()
        sorted_data = sort_IV(data)
        power = get_power(sorted_data)
        finite = np.isfinite(power)
        ax.plot(sorted_data[0,finite],power[finite],color=color,label=label)
        if mark_Pmax:
            Pmax, Vmp, _ = get_Pmax(sorted_data,return_op_point=True)
            ax.scatter(Vmp,Pmax,color=color)
            ax.text(Vmp,Pmax,f" Pmax = {abs(Pmax):.4f} W at {Vmp:.4f} V",fontsize=8)
        ax.set_xlabel("Voltage (V)")
        ax.set_ylabel("Power (W)")
        return ax
    def __str__(self):
        return str(self.key_parameters)
