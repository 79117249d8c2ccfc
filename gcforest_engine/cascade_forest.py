from enum import Enum

import numpy as np
from sklearn.utils import check_random_state

from gcforest_engine import common_utils
from gcforest_engine.exceptions import ConfigurationError, GCForestError, ShapeError
from gcforest_engine.forest_unit import ForestKind


class GrowthState(Enum):
    GROWING = "growing"
    CONVERGED = "converged"
    STOPPED_EARLY = "stopped_early"
    MAX_ITERATION_REACHED = "max_iteration_reached"
    ABORTED = "aborted"


class EarlyStopping:
    def __init__(self, rounds):
        """
        Parameters
        ----------
        :param rounds: int
                Number of consecutive layers without a (strict) accuracy improvement that are tolerated.
        """
        self.rounds = rounds
        self.best_score = None
        self.best_n_layers = 0
        self.n_layers = 0

    @property
    def n_without_improvement(self):
        return self.n_layers - self.best_n_layers

    @property
    def should_stop(self):
        return self.n_without_improvement > self.rounds

    def update(self, score):
        """ Records score of the next layer and returns True if growing should stop. On ties, the earlier layer is
        kept as the best one.
        """
        self.n_layers += 1
        if self.best_score is None or score > self.best_score:
            self.best_score = score
            self.best_n_layers = self.n_layers

        return self.should_stop


class EndingLayerAverage:
    def __init__(self, classes_):
        self.classes_ = np.asarray(classes_)

    def predict_proba(self, feats):
        return common_utils.average_proba(feats, self.classes_.shape[0])

    def predict(self, feats):
        proba_preds = self.predict_proba(feats)

        return self.classes_[np.argmax(proba_preds, axis=1)]


def replay_layers(layers, feats):
    """ Passes `feats` through trained `layers`, feeding each layer with the original features and the output of the
    previous layer. Returns concatenated class distributions of the last layer.
    """
    if len(layers) == 0:
        raise GCForestError("There are no layers to predict with!")

    curr_input = feats
    for layer in layers:
        curr_feats = layer.transform(curr_input)
        curr_input = np.hstack((feats, curr_feats))

    return curr_feats


class CascadeLayer:
    def __init__(self, n_rf=2,
                 n_crf=2,
                 n_estimators=100,
                 max_depth=None,
                 min_instances_per_node=1,
                 max_bins=None,
                 min_info_gain=0.0,
                 feature_subset_strategy="sqrt",
                 crf_feature_subset_strategy=1,
                 k_cv=3,
                 n_classes=None,
                 n_jobs=1,
                 random_state=None,
                 verbose=1,
                 layer_idx=0):
        """
        Parameters
        ----------
        :param n_rf: int (default: 2)
                Number of random forests in cascade layer.
        :param n_crf: int (default: 2)
                Number of completely random forests in cascade layer.
        :param n_estimators: int (default: 100)
                Number of trees in each forest.
        :param k_cv: int (default: 3)
                Parameter for k-fold cross validation.
        :param n_classes: int (default: None)
                Number of all classes.
        :param n_jobs: int (default: 1)
                Number of training jobs (folds x forests) run in parallel.
        :param random_state: int (default: None)
                The random state for fold assignment and forests, used if `fit(...)` does not get its own.
        :param layer_idx: int (default: 0)
                Position of layer in the cascade, used for reporting only.

        Remaining parameters are passed on to every forest (see ForestUnit).
        """
        if n_rf + n_crf == 0:
            raise ConfigurationError("No models were specified for this layer!")

        self.n_rf = n_rf
        self.n_crf = n_crf
        self.n_estimators = n_estimators
        self.max_depth = max_depth
        self.min_instances_per_node = min_instances_per_node
        self.max_bins = max_bins
        self.min_info_gain = min_info_gain
        self.feature_subset_strategy = feature_subset_strategy
        self.crf_feature_subset_strategy = crf_feature_subset_strategy
        self.k_cv = k_cv
        self.n_classes = n_classes
        self.n_jobs = n_jobs
        self.random_state = random_state
        self.verbose = verbose
        self.layer_idx = layer_idx

        self.units = []
        self.n_features_ = None
        self.kfold_acc = None

    @property
    def n_units(self):
        return self.n_rf + self.n_crf

    @property
    def n_output_features(self):
        return self.n_units * self.n_classes

    def _units_params(self):
        common = dict(n_classes=self.n_classes,
                      n_estimators=self.n_estimators,
                      max_depth=self.max_depth,
                      min_instances_per_node=self.min_instances_per_node,
                      max_bins=self.max_bins,
                      min_info_gain=self.min_info_gain)

        return ([dict(common, kind=ForestKind.RF, feature_subset_strategy=self.feature_subset_strategy)] * self.n_rf +
                [dict(common, kind=ForestKind.CRF, feature_subset_strategy=self.crf_feature_subset_strategy)] *
                self.n_crf)

    def fit(self, feats, labels, random_state=None):
        """ Trains all forests of the layer on the same features.

        Parameters
        ----------
        :param feats: numpy.ndarray
                Input of the layer (original features, possibly augmented by output of previous layer).
        :param labels: numpy.ndarray
                Encoded labels.
        :param random_state: int or numpy.random.RandomState (default: None)
        :return: tuple
                (this layer, out-of-fold class distributions of all forests concatenated (RF slots first), accuracy of
                averaged out-of-fold class distributions)
        """
        feats = np.asarray(feats, dtype=np.float64)
        labels = np.asarray(labels)
        rng = check_random_state(random_state if random_state is not None else self.random_state)

        if self.verbose > 0:
            print("Training cascade layer %d on features of shape %s..." % (self.layer_idx, str(feats.shape)))

        fold_ids = common_utils.assign_folds(labels, k_cv=self.k_cv, random_state=rng)
        units, class_distribs = common_utils.fit_out_of_fold(units_params=self._units_params(),
                                                             feats=feats,
                                                             labels=labels,
                                                             fold_ids=fold_ids,
                                                             n_classes=self.n_classes,
                                                             n_jobs=self.n_jobs,
                                                             random_state=rng,
                                                             verbose=self.verbose)

        self.units = units
        self.n_features_ = feats.shape[1]
        self.kfold_acc = common_utils.accuracy(np.mean(class_distribs, axis=0), labels)
        if self.verbose > 0:
            print("Average LAYER accuracy is %f..." % self.kfold_acc)

        return self, np.hstack(class_distribs), self.kfold_acc

    def transform(self, feats):
        """ Class distributions of all (fully trained) forests, concatenated in the same order as in `fit(...)`. """
        if len(self.units) == 0:
            raise GCForestError("Cascade layer %d is not trained yet!" % self.layer_idx)

        feats = np.asarray(feats, dtype=np.float64)
        if feats.ndim != 2 or feats.shape[1] != self.n_features_:
            raise ShapeError("Cascade layer %d was trained on %d features, got input of shape %s..."
                             % (self.layer_idx, self.n_features_, str(feats.shape)))

        return np.hstack([unit.predict_proba(feats) for unit in self.units])

    def predict_proba(self, feats):
        return common_utils.average_proba(self.transform(feats), self.n_classes)


class CascadeForest:
    def __init__(self, config, n_classes, random_state=None):
        """
        Parameters
        ----------
        :param config: GCForestConfig
        :param n_classes: int
                Number of all classes.
        :param random_state: int or numpy.random.RandomState (default: None)
                Overrides `config.random_state` if given.
        """
        self.config = config
        self.n_classes = n_classes
        self.random_state = random_state if random_state is not None else config.random_state

        self.layers = []
        self.accuracies = []
        self.state = None
        self._stopping = EarlyStopping(config.early_stopping_rounds)

    @property
    def best_n_layers(self):
        return self._stopping.best_n_layers

    @property
    def retained_layers(self):
        return self.layers[:self.best_n_layers]

    def _make_layer(self, layer_idx):
        return CascadeLayer(n_rf=self.config.rf_num,
                            n_crf=self.config.crf_num,
                            n_estimators=self.config.cascade_forest_tree_num,
                            max_depth=self.config.max_depth,
                            min_instances_per_node=self.config.cascade_min_instances_per_node,
                            max_bins=self.config.max_bins,
                            min_info_gain=self.config.min_info_gain,
                            feature_subset_strategy=self.config.feature_subset_strategy,
                            crf_feature_subset_strategy=self.config.crf_feature_subset_strategy,
                            k_cv=self.config.k_cv,
                            n_classes=self.n_classes,
                            n_jobs=self.config.n_jobs,
                            verbose=self.config.verbose,
                            layer_idx=layer_idx)

    def fit(self, feats, labels, val_feats=None, val_labels=None):
        """ Grows the cascade layer by layer until accuracy stops improving or `max_iteration` layers are trained.

        Layers are scored on (`val_feats`, `val_labels`) if given, otherwise on their out-of-fold accuracy. All trained
        layers stay in `layers`; `retained_layers` holds the best scoring prefix.
        """
        feats = np.asarray(feats, dtype=np.float64)
        labels = np.asarray(labels)
        use_val = val_feats is not None

        if use_val:
            val_feats = np.asarray(val_feats, dtype=np.float64)
            val_labels = np.asarray(val_labels)
            if val_labels.shape[0] == 0:
                raise ConfigurationError("Validation set is empty...")
            if val_feats.ndim != 2 or val_feats.shape[1] != feats.shape[1]:
                raise ShapeError("Validation features of shape %s do not match training width %d..."
                                 % (str(val_feats.shape), feats.shape[1]))

        rng = check_random_state(self.random_state)
        self.layers, self.accuracies = [], []
        self._stopping = EarlyStopping(self.config.early_stopping_rounds)
        self.state = GrowthState.GROWING

        train_aug, val_aug = None, None
        try:
            for idx_layer in range(self.config.max_iteration):
                if self.config.verbose > 0:
                    print("[fit(...)] Adding cascade layer %d..." % idx_layer)

                train_input = feats if train_aug is None else np.hstack((feats, train_aug))
                layer, curr_train_aug, curr_acc = self._make_layer(idx_layer).fit(train_input, labels,
                                                                                  random_state=rng)

                curr_val_aug = None
                if use_val:
                    val_input = val_feats if val_aug is None else np.hstack((val_feats, val_aug))
                    curr_val_aug = layer.transform(val_input)
                    curr_acc = common_utils.accuracy(common_utils.average_proba(curr_val_aug, self.n_classes),
                                                     val_labels)

                # the layer is complete, from here on it belongs to the cascade
                self.layers.append(layer)
                self.accuracies.append(curr_acc)
                train_aug, val_aug = curr_train_aug, curr_val_aug

                prev_best = self._stopping.best_score
                stop = self._stopping.update(curr_acc)
                if self.config.verbose > 0:
                    if prev_best is not None and curr_acc <= prev_best:
                        print("[fit(...)] Current accuracy <= best accuracy... (%.5f <= %.5f)" % (curr_acc, prev_best))
                    else:
                        print("[fit(...)] Current accuracy is the best so far... (%.5f)" % curr_acc)

                if curr_acc >= 1.0:
                    self.state = GrowthState.CONVERGED
                    break

                if stop:
                    if self.config.verbose > 0:
                        print("[fit(...)] Accuracy has not increased for %d rounds in a row..."
                              % self._stopping.n_without_improvement)
                    self.state = GrowthState.STOPPED_EARLY
                    break
            else:
                self.state = GrowthState.MAX_ITERATION_REACHED
        except (Exception, KeyboardInterrupt):
            self.state = GrowthState.ABORTED
            raise

        if self.config.verbose > 0:
            print("[fit(...)] Number of optimal layers was determined to be %d..." % self.best_n_layers)

        return self

    def predict_proba(self, feats, n_layers=None):
        """ Class distribution after the retained layers (or after the first `n_layers` trained layers). """
        layers = self.retained_layers if n_layers is None else self.layers[:n_layers]

        last_feats = replay_layers(layers, np.asarray(feats, dtype=np.float64))

        return common_utils.average_proba(last_feats, self.n_classes)

    def predict(self, feats, n_layers=None):
        return np.argmax(self.predict_proba(feats, n_layers=n_layers), axis=1)
