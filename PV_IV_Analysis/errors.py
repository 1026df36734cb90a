class ProcessingError(Exception):
    # details holds the offending values for callers to report
    def __init__(self,message,details=None):
        super().__init__(message)
        self.message = message
        self.details = details or {}

class ValidationError(ProcessingError):
    pass

# Isc or Voc could not be determined from the curve
class DegenerateIVError(ValidationError):
    pass
