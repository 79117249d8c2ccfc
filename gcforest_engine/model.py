import numpy as np

from gcforest_engine import common_utils
from gcforest_engine.cascade_forest import EndingLayerAverage, replay_layers
from gcforest_engine.exceptions import GCForestError, ShapeError
from gcforest_engine.mg_scanning import as_instances


class GCForestModel:
    """ A fitted gcForest: trained multi-grained scanning (optional) and retained cascade layers. Prediction replays
    the transformation pipeline of training, nothing gets retrained.

    Parameters
    ----------
    classes_: np.array
        Original labels; class `i` corresponds to index `i` in probability vectors.

    n_features: int or None
        Number of features seen at training time. None if training examples were sequences of different lengths.

    layers: list
        Trained CascadeLayer objects, in the order in which they were grown.

    scanner: MultiGrainedScanning, optional
        Trained multi-grained scanning. None if raw features were fed to the cascade.
    """
    def __init__(self, classes_, n_features, layers, scanner=None):
        if len(layers) == 0:
            raise GCForestError("A model needs at least one cascade layer!")

        self.classes_ = np.asarray(classes_)
        self.n_features_ = n_features
        self.layers = tuple(layers)
        self.scanner = scanner
        self._ending_layer = EndingLayerAverage(classes_=self.classes_)

    @property
    def n_layers(self):
        return len(self.layers)

    @property
    def n_classes(self):
        return self.classes_.shape[0]

    def _check_input(self, feats):
        instances = as_instances(feats)
        if not isinstance(instances, np.ndarray):
            if self.scanner is None or self.n_features_ is not None:
                raise ShapeError("Model was trained on %s features, got examples of different lengths..."
                                 % str(self.n_features_))
            return instances

        if self.n_features_ is not None and instances.shape[1] != self.n_features_:
            raise ShapeError("Model was trained on %d features, got examples with %d features..."
                             % (self.n_features_, instances.shape[1]))

        return instances

    def transform(self, feats):
        """ Features that the first cascade layer consumes (output of multi-grained scanning or raw features). """
        instances = self._check_input(feats)

        return self.scanner.transform(instances) if self.scanner is not None else instances

    def predict_proba(self, feats):
        return self._ending_layer.predict_proba(replay_layers(self.layers, self.transform(feats)))

    def predict(self, feats):
        return self._ending_layer.predict(replay_layers(self.layers, self.transform(feats)))

    def save(self, path):
        common_utils.save_data(self, path)

    @staticmethod
    def load(path):
        model = common_utils.load_data(path)
        if not isinstance(model, GCForestModel):
            raise GCForestError("'%s' does not hold a GCForestModel (found %s)..." % (path, type(model).__name__))

        return model
