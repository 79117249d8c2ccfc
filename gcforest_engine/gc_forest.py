import numpy as np
from sklearn.utils import check_random_state

from gcforest_engine import datasets
from gcforest_engine.cascade_forest import CascadeForest
from gcforest_engine.config import GCForestConfig
from gcforest_engine.exceptions import ConfigurationError, GCForestError, ShapeError, TrainingError
from gcforest_engine.mg_scanning import Grain, MultiGrainedScanning, as_instances, num_instances, select_instances
from gcforest_engine.model import GCForestModel


class GCForestClassifier:
    """
    Parameters
    ----------
    config: GCForestConfig, optional
        All hyperparameters. If None, a GCForestConfig is constructed from `params`.

    params:
        Keyword arguments of GCForestConfig. Can not be combined with `config`.

    Example
    -------
        >>> gcf = GCForestClassifier(multi_scan_window=[4, 6], rf_num=2, crf_num=2, random_state=0)
        >>> gcf.fit(train_X, train_y)
        >>> preds = gcf.predict(test_X)
    """
    def __init__(self, config=None, **params):
        if config is not None and len(params) > 0:
            raise ConfigurationError("Pass either 'config' or keyword parameters, not both...")

        self.config = config if config is not None else GCForestConfig(**params)
        if not isinstance(self.config, GCForestConfig):
            raise ConfigurationError("'config' must be an object of type GCForestConfig!")

        self.classes_ = None
        self.model_ = None
        self._mgscan = None
        self._casc_forest = None

    def _assign_labels(self, labels_train):
        self.classes_, encoded_labels = np.unique(labels_train, return_inverse=True)

        return encoded_labels

    def _encode_labels(self, labels):
        # labels that were not seen in training are encoded as -1 (and are therefore never predicted correctly)
        labels = np.asarray(labels)
        encoded_labels = np.full(labels.shape[0], -1, dtype=np.int64)
        for encoded_label in range(self.classes_.shape[0]):
            encoded_labels[labels == self.classes_[encoded_label]] = encoded_label

        return encoded_labels

    def _prepare_grains(self, n_classes):
        single_shape = list(self.config.data_size) if self.config.data_size is not None else None

        grains = []
        for window, stride in zip(self.config.window_shapes(), self.config.stride_shapes()):
            grains.append(Grain(window_size=window,
                                single_shape=single_shape,
                                stride=stride,
                                data_style=self.config.data_style,
                                n_estimators=self.config.scan_forest_tree_num,
                                max_depth=self.config.max_depth,
                                min_instances_per_node=self.config.scan_min_instances_per_node,
                                max_bins=self.config.max_bins,
                                min_info_gain=self.config.min_info_gain,
                                feature_subset_strategy=self.config.feature_subset_strategy,
                                crf_feature_subset_strategy=self.config.crf_feature_subset_strategy,
                                k_cv=self.config.k_cv,
                                n_classes=n_classes,
                                n_jobs=self.config.n_jobs,
                                verbose=self.config.verbose))

        return grains

    def _build_model(self, n_features):
        if self._casc_forest is None or self._casc_forest.best_n_layers == 0:
            return None

        return GCForestModel(classes_=self.classes_,
                             n_features=n_features,
                             layers=self._casc_forest.retained_layers,
                             scanner=self._mgscan)

    def fit(self, feats, labels, val_feats=None, val_labels=None):
        """ Trains multi-grained scanning (if windows are configured) and grows the cascade.

        Parameters
        ----------
        :param feats: numpy.ndarray or list
                Training features. A list of 1D arrays of different lengths is accepted for sequence data when
                multi-grained scanning is used.
        :param labels: numpy.ndarray
                Training labels.
        :param val_feats: numpy.ndarray or list (default: None)
                Validation features, used to score cascade layers. If None, `config.validation_fraction` of training
                data is held out, or out-of-fold accuracy is used if that is 0.
        :param val_labels: numpy.ndarray (default: None)
        :return: GCForestClassifier
        """
        if self.config.verbose > 0:
            print("[fit(...)] TRAINING...")

        instances = as_instances(feats)
        labels = np.asarray(labels)
        if num_instances(instances) == 0:
            raise TrainingError("Can not train on an empty set of examples...")
        if num_instances(instances) != labels.shape[0]:
            raise ShapeError("Got %d examples, but %d labels..." % (num_instances(instances), labels.shape[0]))
        if not isinstance(instances, np.ndarray) and (not self.config.use_scanning or
                                                      self.config.data_style != "sequence"):
            raise ShapeError("Examples of different lengths can only be used with multi-grained scanning of "
                             "sequences...")
        if (val_feats is None) != (val_labels is None):
            raise ConfigurationError("'val_feats' and 'val_labels' must be given together...")

        self.model_, self._mgscan, self._casc_forest = None, None, None
        encoded_labels = self._assign_labels(labels)
        n_classes = self.classes_.shape[0]
        rng = check_random_state(self.config.random_state)

        if val_feats is not None:
            val_instances = as_instances(val_feats)
            val_encoded = self._encode_labels(val_labels)
            if num_instances(val_instances) != val_encoded.shape[0]:
                raise ShapeError("Got %d validation examples, but %d labels..."
                                 % (num_instances(val_instances), val_encoded.shape[0]))
            if val_encoded.shape[0] == 0:
                raise ConfigurationError("Validation set is empty...")
        elif self.config.validation_fraction > 0:
            train_idx, val_idx = datasets.holdout_split(num_instances(instances), encoded_labels,
                                                        test_size=self.config.validation_fraction,
                                                        random_state=rng)
            val_instances, val_encoded = select_instances(instances, val_idx), encoded_labels[val_idx]
            instances, encoded_labels = select_instances(instances, train_idx), encoded_labels[train_idx]
            if self.config.verbose > 0:
                print("[fit(...)] Holding out %d examples for early stopping..." % val_idx.shape[0])
        else:
            val_instances, val_encoded = None, None

        n_features = instances.shape[1] if isinstance(instances, np.ndarray) else None
        if val_instances is not None and n_features is not None and \
                (not isinstance(val_instances, np.ndarray) or val_instances.shape[1] != n_features):
            raise ShapeError("Validation examples do not have %d features..." % n_features)

        # features that will be used in cascade forest - if multi-grained scanning was not requested,
        # use only raw features
        if self.config.use_scanning:
            mg_scan = MultiGrainedScanning(grains=self._prepare_grains(n_classes), verbose=self.config.verbose)
            casc_input = mg_scan.fit_transform(instances, encoded_labels, random_state=rng)
            val_input = mg_scan.transform(val_instances) if val_instances is not None else None
            self._mgscan = mg_scan
            if self.config.verbose > 0:
                print("[fit(...)] Multi-grained scanning shape -> %s" % str(casc_input.shape))
        else:
            casc_input, val_input = instances, val_instances

        self._casc_forest = CascadeForest(self.config, n_classes=n_classes, random_state=rng)
        try:
            self._casc_forest.fit(casc_input, encoded_labels, val_feats=val_input, val_labels=val_encoded)
        except TrainingError as exc:
            # layers, completed before the failure, still make a usable model
            self.model_ = self._build_model(n_features)
            exc.partial_model = self.model_
            raise
        except KeyboardInterrupt:
            self.model_ = self._build_model(n_features)
            raise

        self.model_ = self._build_model(n_features)
        if self.config.verbose > 0:
            print("[fit(...)] Done training! (%s, %d layers kept)\n" % (self._casc_forest.state.value,
                                                                       self.model_.n_layers))

        return self

    def _check_fitted(self):
        if self.model_ is None:
            raise GCForestError("GCForestClassifier is not trained yet!")

    @property
    def n_layers_(self):
        self._check_fitted()
        return self.model_.n_layers

    @property
    def layer_accuracies_(self):
        return list(self._casc_forest.accuracies) if self._casc_forest is not None else []

    @property
    def state_(self):
        return self._casc_forest.state if self._casc_forest is not None else None

    def predict_proba(self, feats):
        self._check_fitted()
        return self.model_.predict_proba(feats)

    def predict(self, feats):
        self._check_fitted()
        return self.model_.predict(feats)

    def fit_predict(self, train_feats, train_labels, test_feats):
        return self.fit(train_feats, train_labels).predict(test_feats)

    def save(self, path):
        self._check_fitted()
        self.model_.save(path)
