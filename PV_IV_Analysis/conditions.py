import os
import logging
import yaml
from dataclasses import dataclass, fields, asdict
from pathlib import Path
from PV_IV_Analysis.errors import ValidationError

logger = logging.getLogger(__name__)

CONDITIONS_FILE = Path(__file__).with_name("conditions.yaml")

ENV_KEYS = {"temperature":"PV_TEMPERATURE",
            "irradiance":"PV_IRRADIANCE",
            "cell_area":"PV_CELL_AREA"}

def _to_float(value,name,details):
    try:
        return float(value)
    except (TypeError,ValueError):
        raise ValidationError(f"{name} is not a number: {value!r}",details)

@dataclass(frozen=True)
class MeasurementConditions:
    k_B: float = 1.380649e-23 # J/K
    q: float = 1.602176634e-19 # C
    temperature: float = 300.0 # K
    irradiance: float = 1000.0 # W/m2
    cell_area: float = 1e-4 # m2
    def VT(self):
        return self.k_B*self.temperature/self.q
    def incident_power(self):
        return self.irradiance*self.cell_area
    def validate(self):
        # error message for the first unusable value, None if all are fine
        for field in fields(self):
            value = getattr(self,field.name)
            if not isinstance(value,(int,float)) or isinstance(value,bool):
                return f"{field.name} must be a number"
            if not value > 0:
                return f"{field.name} must be positive"
        return None
    def as_dict(self):
        return asdict(self)
    @classmethod
    def from_yaml(cls,path):
        """Conditions from a YAML mapping; defaults when the file does not exist."""
        path = Path(path)
        if not path.exists():
            logger.warning("Conditions file %s not found; using defaults",path)
            return cls()
        with path.open("r",encoding="utf-8") as f:
            data = yaml.safe_load(f) or {}
        if not isinstance(data,dict):
            raise ValidationError(f"Conditions file {path} must hold a mapping",{"path":str(path)})
        known = {field.name for field in fields(cls)}
        unknown = sorted(set(data) - known)
        if unknown:
            raise ValidationError(f"Unknown condition keys: {', '.join(unknown)}",
                                  {"path":str(path),"keys":unknown})
        values = {}
        for key, value in data.items():
            values[key] = _to_float(value,key,{"path":str(path),"key":key,"value":value})
        return cls(**values)
    @classmethod
    def from_env(cls,base=None):
        # PV_TEMPERATURE, PV_IRRADIANCE and PV_CELL_AREA override base
        values = (base or cls()).as_dict()
        for key, env_name in ENV_KEYS.items():
            raw = os.getenv(env_name)
            if raw is not None:
                values[key] = _to_float(raw,env_name,{"variable":env_name,"value":raw})
        return cls(**values)

STC = MeasurementConditions()

def load_conditions(path=CONDITIONS_FILE):
    conditions = MeasurementConditions.from_yaml(path)
    message = conditions.validate()
    if message is not None:
        raise ValidationError(message,conditions.as_dict())
    return conditions
