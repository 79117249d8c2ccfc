from collections import namedtuple
import numbers

import numpy as np

from gcforest_engine.exceptions import ConfigurationError, ScanConfigurationError

DATA_STYLES = ("sequence", "image")

_NAMED_STRATEGIES = ("auto", "sqrt", "log2", "all", "onethird")

_FIELDS = ["multi_scan_window",
           "scan_strides",
           "data_style",
           "data_size",
           "rf_num",
           "crf_num",
           "scan_forest_tree_num",
           "cascade_forest_tree_num",
           "max_iteration",
           "early_stopping_rounds",
           "max_depth",
           "max_bins",
           "min_info_gain",
           "scan_min_instances_per_node",
           "cascade_min_instances_per_node",
           "feature_subset_strategy",
           "crf_feature_subset_strategy",
           "k_cv",
           "validation_fraction",
           "n_jobs",
           "random_state",
           "verbose"]


def resolve_max_features(strategy):
    """ Converts a feature subset strategy into the `max_features` value of a scikit-learn forest.

    Parameters
    ----------
    :param strategy: str or int or float
            One of "auto", "sqrt", "log2", "all", "onethird", a number of features (int), a fraction of features
            (float in (0, 1]) or a string holding one of the numbers.
    :return: str or int or float or None
    """
    if isinstance(strategy, str):
        if strategy in ("auto", "sqrt"):
            return "sqrt"
        elif strategy == "log2":
            return "log2"
        elif strategy == "all":
            return None
        elif strategy == "onethird":
            return 1.0 / 3
        try:
            strategy = int(strategy) if strategy.strip().isdigit() else float(strategy)
        except ValueError:
            raise ConfigurationError("Unknown feature subset strategy '%s' (expected one of {%s} or a number)..."
                                     % (strategy, ",".join(_NAMED_STRATEGIES)))

    if isinstance(strategy, bool):
        raise ConfigurationError("Feature subset strategy can not be a boolean...")
    if isinstance(strategy, numbers.Integral):
        if strategy < 1:
            raise ConfigurationError("Feature subset strategy must select at least 1 feature (got %d)..." % strategy)
        return int(strategy)
    if isinstance(strategy, numbers.Real):
        if not 0.0 < strategy <= 1.0:
            raise ConfigurationError("Fractional feature subset strategy must be in (0, 1] (got %f)..." % strategy)
        return float(strategy)

    raise ConfigurationError("Unknown feature subset strategy %r..." % (strategy,))


def window_shape(window, data_style):
    """ Converts a window (or stride) to a [num_rows, num_cols] numpy.ndarray.

    A scalar is taken as [1, `window`] for sequence data and as a square [`window`, `window`] for image data.
    """
    if isinstance(window, numbers.Integral):
        shape = np.array([1, window]) if data_style == "sequence" else np.array([window, window])
    elif isinstance(window, (tuple, list, np.ndarray)):
        shape = np.array(window).astype(np.int64).flatten()
        if shape.shape[0] == 1:
            shape = np.array([1, shape[0]])
    else:
        raise ConfigurationError("Window size and stride need to be int/tuple/list/np.ndarray (got %r)..." % (window,))

    if shape.shape[0] != 2 or np.any(shape < 1):
        raise ConfigurationError("Window size and stride need to be positive and at most 2D (got %r)..." % (window,))

    return shape


class GCForestConfig(namedtuple("GCForestConfig", _FIELDS)):
    """ Hyperparameters of a gcForest, validated once when the object is constructed.

    Parameters
    ----------
    multi_scan_window: list, optional
        Window sizes used in multi-grained scanning, in order. Each item is an int or a [num_rows, num_cols] pair.
        Empty means multi-grained scanning is skipped.

    scan_strides: list, optional
        Step size of the sliding window for each item of `multi_scan_window`. Defaults to 1 everywhere.

    data_style: str, optional
        How a flat feature vector is reinterpreted for scanning: "sequence" (1D) or "image" (2D, see `data_size`).

    data_size: list or tuple, optional
        Shape of a single example ([num_rows, num_cols]) before it was unrolled. Required for "image" data.

    rf_num, crf_num: int, optional
        Number of random forests and completely random forests in a single cascade layer.

    scan_forest_tree_num, cascade_forest_tree_num: int, optional
        Number of trees in a single forest of multi-grained scanning and of the cascade.

    max_iteration: int, optional
        Maximum number of cascade layers that are grown.

    early_stopping_rounds: int, optional
        Number of consecutive layers without an accuracy improvement that are tolerated. The layer after those
        stops the growth.

    max_depth, max_bins, min_info_gain: optional
        Tree growing parameters, passed on to every forest. `max_bins=None` disables feature binning.

    scan_min_instances_per_node, cascade_min_instances_per_node: int, optional
        Minimal number of examples in a leaf for forests in multi-grained scanning and in the cascade.

    feature_subset_strategy, crf_feature_subset_strategy: str or int or float, optional
        Number of features considered per split in random forests and in completely random forests.

    k_cv: int, optional
        Number of groups, used in k-fold cross validation.

    validation_fraction: float, optional
        Fraction of training data that is held out to drive early stopping when no validation set is given to
        `fit(...)`. 0 means out-of-fold accuracy is used instead.

    n_jobs: int, optional
        Number of training jobs run in parallel (-1 means all processors).

    random_state: int, optional
        Seed for all stochastic parts. If None, do not seed.

    verbose: int, optional
        0 is silent, 1 reports layers and grains, 2 also reports single forests.
    """
    __slots__ = ()

    def __new__(cls, multi_scan_window=(),
                scan_strides=None,
                data_style="sequence",
                data_size=None,
                rf_num=2,
                crf_num=2,
                scan_forest_tree_num=100,
                cascade_forest_tree_num=100,
                max_iteration=10,
                early_stopping_rounds=2,
                max_depth=None,
                max_bins=None,
                min_info_gain=0.0,
                scan_min_instances_per_node=10,
                cascade_min_instances_per_node=1,
                feature_subset_strategy="sqrt",
                crf_feature_subset_strategy=1,
                k_cv=3,
                validation_fraction=0.0,
                n_jobs=1,
                random_state=None,
                verbose=1):
        multi_scan_window = tuple(multi_scan_window) if multi_scan_window is not None else ()
        scan_strides = tuple(scan_strides) if scan_strides is not None else None
        data_size = tuple(int(dim) for dim in data_size) if data_size is not None else None

        self = super().__new__(cls, multi_scan_window, scan_strides, data_style, data_size, rf_num, crf_num,
                               scan_forest_tree_num, cascade_forest_tree_num, max_iteration, early_stopping_rounds,
                               max_depth, max_bins, min_info_gain, scan_min_instances_per_node,
                               cascade_min_instances_per_node, feature_subset_strategy, crf_feature_subset_strategy,
                               k_cv, validation_fraction, n_jobs, random_state, verbose)
        self._validate()
        return self

    def replace(self, **changes):
        """ Returns a new (validated) config with `changes` applied. """
        params = self._asdict()
        params.update(changes)
        return GCForestConfig(**params)

    @property
    def use_scanning(self):
        return len(self.multi_scan_window) > 0

    @property
    def n_units(self):
        return self.rf_num + self.crf_num

    def window_shapes(self):
        return [window_shape(window, self.data_style) for window in self.multi_scan_window]

    def stride_shapes(self):
        strides = self.scan_strides if self.scan_strides is not None else [1] * len(self.multi_scan_window)
        return [window_shape(stride, self.data_style) for stride in strides]

    def _validate(self):
        for name in ("rf_num", "crf_num"):
            if not isinstance(getattr(self, name), numbers.Integral) or getattr(self, name) < 0:
                raise ConfigurationError("'%s' must be a non-negative int..." % name)
        if self.n_units == 0:
            raise ConfigurationError("A cascade layer needs at least one forest ('rf_num' + 'crf_num' is 0)...")

        _check_positive_int(self, "scan_forest_tree_num")
        _check_positive_int(self, "cascade_forest_tree_num")
        _check_positive_int(self, "max_iteration")
        _check_positive_int(self, "scan_min_instances_per_node")
        _check_positive_int(self, "cascade_min_instances_per_node")

        if not isinstance(self.early_stopping_rounds, numbers.Integral) or self.early_stopping_rounds < 0:
            raise ConfigurationError("'early_stopping_rounds' must be a non-negative int...")
        if not isinstance(self.k_cv, numbers.Integral) or self.k_cv < 2:
            raise ConfigurationError("'k_cv' must be an int >= 2 (got %r)..." % (self.k_cv,))
        if self.max_depth is not None and (not isinstance(self.max_depth, numbers.Integral) or self.max_depth < 1):
            raise ConfigurationError("'max_depth' must be None or a positive int...")
        if self.max_bins is not None and (not isinstance(self.max_bins, numbers.Integral) or self.max_bins < 2):
            raise ConfigurationError("'max_bins' must be None or an int >= 2...")
        if self.min_info_gain < 0:
            raise ConfigurationError("'min_info_gain' must be non-negative...")
        if not 0.0 <= self.validation_fraction < 1.0:
            raise ConfigurationError("'validation_fraction' must be in [0, 1)...")
        if self.n_jobs == 0:
            raise ConfigurationError("'n_jobs' can not be 0...")

        resolve_max_features(self.feature_subset_strategy)
        resolve_max_features(self.crf_feature_subset_strategy)

        self._validate_scanning()

    def _validate_scanning(self):
        if self.data_style not in DATA_STYLES:
            raise ConfigurationError("'data_style' must be one of {%s}..." % ",".join(DATA_STYLES))

        if self.scan_strides is not None and len(self.scan_strides) != len(self.multi_scan_window):
            raise ConfigurationError("'scan_strides' (%d items) must match 'multi_scan_window' (%d items)..."
                                     % (len(self.scan_strides), len(self.multi_scan_window)))

        if self.data_size is not None and (len(self.data_size) not in (1, 2) or min(self.data_size) < 1):
            raise ConfigurationError("'data_size' must hold 1 or 2 positive dimensions...")

        if not self.use_scanning:
            return

        if self.data_style == "image" and (self.data_size is None or len(self.data_size) != 2):
            raise ConfigurationError("Scanning 'image' data requires 'data_size' = [num_rows, num_cols]...")

        windows = self.window_shapes()
        self.stride_shapes()

        if self.data_size is not None:
            single_shape = window_shape(list(self.data_size), self.data_style)
            for window in windows:
                if np.any(window > single_shape):
                    raise ScanConfigurationError("Window %s does not fit into examples of shape %s..."
                                                 % (str(window), str(single_shape)))


def _check_positive_int(config, name):
    value = getattr(config, name)
    if not isinstance(value, numbers.Integral) or value < 1:
        raise ConfigurationError("'%s' must be a positive int (got %r)..." % (name, value))
