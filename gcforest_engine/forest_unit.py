from enum import Enum

import numpy as np
from sklearn.ensemble import RandomForestClassifier, ExtraTreesClassifier
from sklearn.preprocessing import KBinsDiscretizer

from gcforest_engine.config import resolve_max_features
from gcforest_engine.exceptions import GCForestError, ShapeError, TrainingError


class ForestKind(Enum):
    RF = "rf"
    CRF = "crf"

    @property
    def randomized(self):
        # completely random forests pick split thresholds without looking at labels
        return self is ForestKind.CRF


def make_trainer(kind, n_estimators, max_depth, min_instances_per_node, max_features, min_info_gain, random_state):
    """ Creates an (unfitted) scikit-learn forest for `kind`. """
    if kind.randomized:
        return ExtraTreesClassifier(n_estimators=n_estimators,
                                    max_depth=max_depth,
                                    min_samples_leaf=min_instances_per_node,
                                    max_features=max_features,
                                    min_impurity_decrease=min_info_gain,
                                    bootstrap=False,
                                    random_state=random_state,
                                    n_jobs=1)

    return RandomForestClassifier(n_estimators=n_estimators,
                                  max_depth=max_depth,
                                  min_samples_leaf=min_instances_per_node,
                                  max_features=max_features,
                                  min_impurity_decrease=min_info_gain,
                                  bootstrap=True,
                                  random_state=random_state,
                                  n_jobs=1)


class ForestUnit:
    def __init__(self, kind,
                 n_classes,
                 n_estimators=100,
                 max_depth=None,
                 min_instances_per_node=1,
                 max_bins=None,
                 feature_subset_strategy="sqrt",
                 min_info_gain=0.0,
                 random_state=None):
        """
        Parameters
        ----------
        :param kind: ForestKind
                Random forest (RF) or completely random forest (CRF).
        :param n_classes: int
                Number of all classes. Required because the training rows might be a subset which does not include
                all encoded labels.
        :param n_estimators: int (default: 100)
                Number of trees in the forest.
        :param max_depth: int (default: None)
                Maximum depth of trees. None means trees are grown until leaves are pure.
        :param min_instances_per_node: int (default: 1)
                Minimal number of examples in a leaf.
        :param max_bins: int (default: None)
                If set, each feature is discretized into at most `max_bins` quantile bins before training.
        :param feature_subset_strategy: str or int or float (default: "sqrt")
                Number of features considered at each split.
        :param min_info_gain: float (default: 0.0)
                Minimal impurity decrease for a split to be made.
        :param random_state: int (default: None)
                The random state for the underlying trainer.
        """
        self.kind = kind
        self.n_classes = n_classes
        self.n_estimators = n_estimators
        self.max_depth = max_depth
        self.min_instances_per_node = min_instances_per_node
        self.max_bins = max_bins
        self.feature_subset_strategy = feature_subset_strategy
        self.min_info_gain = min_info_gain
        self.random_state = random_state

        self.estimator = None
        self.n_features_ = None
        self._binner = None

    @property
    def is_fitted(self):
        return self.estimator is not None

    def fit(self, feats, labels):
        """ Trains the forest. Labels need to be encoded as integers in [0, `n_classes`). """
        feats = np.asarray(feats, dtype=np.float64)
        labels = np.asarray(labels)

        if feats.ndim != 2 or feats.shape[0] == 0:
            raise TrainingError("Can not train %s on an empty set of examples..." % self.kind.name)
        if feats.shape[0] != labels.shape[0]:
            raise ShapeError("Got %d examples, but %d labels..." % (feats.shape[0], labels.shape[0]))
        if np.unique(labels).shape[0] < 2:
            raise TrainingError("Can not train %s on examples of a single class..." % self.kind.name)

        if self.max_bins is not None:
            self._binner = KBinsDiscretizer(n_bins=self.max_bins, encode="ordinal", strategy="quantile",
                                            subsample=None)
            feats = self._binner.fit_transform(feats)

        estimator = make_trainer(kind=self.kind,
                                 n_estimators=self.n_estimators,
                                 max_depth=self.max_depth,
                                 min_instances_per_node=self.min_instances_per_node,
                                 max_features=resolve_max_features(self.feature_subset_strategy),
                                 min_info_gain=self.min_info_gain,
                                 random_state=self.random_state)
        estimator.fit(feats, labels)

        self.n_features_ = feats.shape[1]
        self.estimator = estimator

        return self

    def predict_proba(self, feats):
        """ Predicts class probabilities: numpy.ndarray of shape [num_examples, `n_classes`]. """
        if not self.is_fitted:
            raise GCForestError("%s unit is not fitted yet!" % self.kind.name)

        feats = np.asarray(feats, dtype=np.float64)
        if feats.ndim != 2 or feats.shape[1] != self.n_features_:
            raise ShapeError("%s unit was trained on %d features, got examples of shape %s..."
                             % (self.kind.name, self.n_features_, str(feats.shape)))

        proba_preds = np.zeros((feats.shape[0], self.n_classes))
        if feats.shape[0] == 0:
            return proba_preds

        if self._binner is not None:
            feats = self._binner.transform(feats)

        class_indices = self.estimator.classes_.astype(np.int64)
        proba_preds[:, class_indices] = self.estimator.predict_proba(feats)

        return proba_preds

    def predict(self, feats):
        return np.argmax(self.predict_proba(feats), axis=1)
