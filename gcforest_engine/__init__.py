from gcforest_engine.config import GCForestConfig
from gcforest_engine.exceptions import (ConfigurationError, GCForestError, ScanConfigurationError, ShapeError,
                                        TrainingError)
from gcforest_engine.gc_forest import GCForestClassifier
from gcforest_engine.model import GCForestModel

__version__ = "0.2a"
