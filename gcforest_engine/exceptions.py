class GCForestError(Exception):
    """ Base class for all errors raised by gcforest_engine. """


class ConfigurationError(GCForestError, ValueError):
    """ Invalid or contradictory hyperparameters. Raised before any training starts. """


class ScanConfigurationError(ConfigurationError):
    """ A scanning window that does not fit into any instance. """


class ShapeError(GCForestError, ValueError):
    """ Feature width differs from the width that was seen at fit time. """


class TrainingError(GCForestError):
    """ Training could not be carried out, e.g. a training fold only holds a single class.

    Parameters
    ----------
    :param message: str
            Description of the failure.
    :param partial_model: GCForestModel (default: None)
            Model, built from layers that were completed before the failure (if there were any).
    """
    def __init__(self, message, partial_model=None):
        super().__init__(message)
        self.partial_model = partial_model
