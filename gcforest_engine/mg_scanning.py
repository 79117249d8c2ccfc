import numpy as np
from sklearn.utils import check_random_state

from gcforest_engine import common_utils
from gcforest_engine.config import window_shape
from gcforest_engine.exceptions import GCForestError, ScanConfigurationError, ShapeError
from gcforest_engine.forest_unit import ForestKind


def as_instances(features):
    """ Converts `features` into a 2D numpy.ndarray or, if examples are sequences of different lengths, into a list of
    1D numpy.ndarrays.
    """
    if isinstance(features, np.ndarray) or hasattr(features, "__array__"):
        features = np.asarray(features, dtype=np.float64)
        # convert single example to 2d to avoid some branching
        if features.ndim == 1:
            return np.expand_dims(features, 0)
        # unroll images
        return features.reshape([features.shape[0], -1]) if features.ndim > 2 else features

    rows = [np.asarray(row, dtype=np.float64).flatten() for row in features]
    if len(rows) == 0:
        return np.zeros((0, 0))

    if len(set(row.shape[0] for row in rows)) == 1:
        return np.vstack(rows)

    return rows


def num_instances(instances):
    return instances.shape[0] if isinstance(instances, np.ndarray) else len(instances)


def select_instances(instances, indices):
    if isinstance(instances, np.ndarray):
        return instances[indices]

    return [instances[idx] for idx in indices]


def _average_by_owner(proba_preds, owner, n_instances):
    # mean over all window placements of the same example; examples without placements stay at 0
    sums = np.zeros((n_instances, proba_preds.shape[1]))
    np.add.at(sums, owner, proba_preds)
    counts = np.bincount(owner, minlength=n_instances).astype(np.float64)

    has_windows = counts > 0
    sums[has_windows] /= counts[has_windows].reshape([-1, 1])

    return sums


class MultiGrainedScanning:
    def __init__(self, grains=None, verbose=1):
        """
        Parameters
        ----------
        :param grains: list (default: None)
                Grain objects in sequential order. Transformed features are concatenated in this order.
        :param verbose: int (default: 1)
        """
        self.grains = grains if grains is not None else []
        self.verbose = verbose

    def add_grain(self, grain):
        """ Insert grain into the multi grain structure.
            NOTE: this method only inserts the grain, it does not train the grain classifiers or anything else.
        """
        if not isinstance(grain, Grain):
            raise GCForestError("'grain' must be an object of type Grain!")

        self.grains.append(grain)

    @property
    def is_fitted(self):
        return len(self.grains) > 0 and all(grain.is_fitted for grain in self.grains)

    def fit_transform(self, features, labels, random_state=None):
        """ Trains all grains and returns their concatenated out-of-fold features.

        Parameters
        ----------
        :param features: numpy.ndarray or list
                Features (i.e. X). A list of 1D arrays of different lengths is accepted for sequence data.
        :param labels: numpy.ndarray
                Encoded labels (i.e. y).
        :param random_state: int or numpy.random.RandomState (default: None)
        :return: numpy.ndarray
                Transformed features of shape [num_examples, num_grains * 2 * num_classes].
        """
        if len(self.grains) == 0:
            raise GCForestError("There are no grains in the multi-grained structure!")

        rng = check_random_state(random_state)
        instances = as_instances(features)
        self.check_windows(instances)

        transformed_feats = []
        for idx_grain, grain in enumerate(self.grains):
            if self.verbose > 0:
                print("[fit_transform(...)] Scanning with grain %d (window %s, stride %s)..."
                      % (idx_grain, str(grain.wind_size), str(grain.stride)))
            transformed_feats.append(grain.fit_transform(instances, labels, random_state=rng))

        return np.hstack(transformed_feats)

    def check_windows(self, features):
        """ Raises ScanConfigurationError if the window of some grain does not fit into any of the examples. Runs
        before any grain gets trained.
        """
        instances = as_instances(features)
        for idx_grain, grain in enumerate(self.grains):
            if not np.any(grain.n_placements(instances) > 0):
                raise ScanConfigurationError("Window %s of grain %d does not fit into any of the examples..."
                                             % (str(grain.wind_size), idx_grain))

    def transform(self, features):
        """ Transform features with all (trained) grains in multi-grained structure. """
        if not self.is_fitted:
            raise GCForestError("Multi-grained scanning is not trained yet!")

        instances = as_instances(features)

        return np.hstack([grain.transform(instances) for grain in self.grains])


class Grain:
    def __init__(self, window_size,
                 single_shape=None,
                 stride=1,
                 data_style="sequence",
                 n_estimators=100,
                 max_depth=None,
                 min_instances_per_node=10,
                 max_bins=None,
                 min_info_gain=0.0,
                 feature_subset_strategy="sqrt",
                 crf_feature_subset_strategy=1,
                 k_cv=3,
                 n_classes=None,
                 n_jobs=1,
                 verbose=1):
        """
        Parameters
        ----------
        :param window_size: int or tuple or list or numpy.ndarray
                Window size, used in sliding window - format for 2D windows: [num_rows, num_cols].
        :param single_shape: int or tuple or list or numpy.ndarray (default: None)
                Shape of a single example, before being unrolled (i.e. flattened into a 1D vector) - format:
                [num_rows, num_cols] i.e. [height, width]. If None, every example is taken as a sequence of its own
                length.
        :param stride: int or tuple or list or numpy.ndarray (default: 1)
                Step size for sliding window - format for 2D stride shape: [num_rows, num_cols].
        :param data_style: str (default: "sequence")
                "sequence" takes a scalar window as [1, window_size], "image" as [window_size, window_size].
        :param n_estimators: int (default: 100)
                Number of trees in each of the two forests trained on sliced data.
        :param k_cv: int (default: 3)
                Parameter for k-fold cross validation.
        :param n_classes: int (default: None)
                Number of all classes.
        :param n_jobs: int (default: 1)
                Number of forests trained in parallel.

        Remaining parameters are passed on to both forests (see ForestUnit).
        """
        self.wind_size = window_shape(window_size, data_style)
        self.stride = window_shape(stride, data_style)
        self.single_shape = window_shape(single_shape, "sequence") if single_shape is not None else None
        self.data_style = data_style
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
        self.verbose = verbose

        self.rf_unit, self.crf_unit = None, None
        self.kfold_acc = None

    @property
    def is_fitted(self):
        return self.rf_unit is not None and self.crf_unit is not None

    @property
    def window_width(self):
        return int(self.wind_size[0] * self.wind_size[1])

    def _units_params(self):
        common = dict(n_classes=self.n_classes,
                      n_estimators=self.n_estimators,
                      max_depth=self.max_depth,
                      min_instances_per_node=self.min_instances_per_node,
                      max_bins=self.max_bins,
                      min_info_gain=self.min_info_gain)

        return [dict(common, kind=ForestKind.RF, feature_subset_strategy=self.feature_subset_strategy),
                dict(common, kind=ForestKind.CRF, feature_subset_strategy=self.crf_feature_subset_strategy)]

    def window_indices(self, single_shape):
        """ Indices (into an unrolled example of shape `single_shape`) of all window placements, one placement per
        row. Placements are ordered row by row. Returns an empty array if the window does not fit.
        """
        num_rows, num_cols = single_shape
        if self.wind_size[0] > num_rows or self.wind_size[1] > num_cols:
            return np.zeros((0, self.window_width), dtype=np.int64)

        wind_single_row = np.arange(self.wind_size[1])
        wind_all_rows = np.tile(wind_single_row, (self.wind_size[0], 1))

        # take same columns in all rows of sliding window - makes use of broadcasting
        wind_all_rows += np.reshape(np.arange(self.wind_size[0]), [-1, 1]) * num_cols
        wind_all_rows = wind_all_rows.flatten()

        iters_cols = np.reshape(np.arange(start=0, stop=(num_cols - self.wind_size[1] + 1), step=self.stride[1]),
                                [-1, 1])
        # create indices for when sliding window gets moved right by step self.stride[1] (for each of these movements)
        winds_single_row = wind_all_rows + iters_cols

        iters_rows = np.reshape(np.arange(start=0, stop=(num_rows - self.wind_size[0] + 1), step=self.stride[0]),
                                [-1, 1, 1])
        # create indices for when sliding window gets moved down by step self.stride[0] (for each of these movements)
        all_winds = winds_single_row + iters_rows * num_cols

        return all_winds.reshape([-1, self.window_width])

    def _matrix_shape(self, features):
        single_shape = self.single_shape if self.single_shape is not None else np.array([1, features.shape[1]])
        if features.shape[1] != single_shape[0] * single_shape[1]:
            raise ShapeError("Examples of shape %s were expected to have %d features, got %d..."
                             % (str(single_shape), single_shape[0] * single_shape[1], features.shape[1]))

        return single_shape

    def _slice_matrix(self, features, instance_ids):
        wind_indices = self.window_indices(self._matrix_shape(features))
        sliced = features[:, wind_indices.flatten()].reshape([-1, self.window_width])
        owner = np.repeat(instance_ids, wind_indices.shape[0])

        return sliced, owner

    def slice_data(self, features):
        """ Applies sliding window, specified when constructing this grain.
        WARNING: This can be very memory intensive for a larger data set. You might want to consider setting stride to
        something else than 1 to avoid running out of memory.

        Parameters
        ----------
        :param features: numpy.ndarray or list
                Features, on which sliding window will be applied.
        :return: tuple
                (sliced features, index of the example that each slice was taken from)
        """
        instances = as_instances(features)
        if isinstance(instances, np.ndarray):
            return self._slice_matrix(instances, np.arange(instances.shape[0]))

        if self.single_shape is not None:
            raise ShapeError("Examples of different lengths can only be scanned as sequences...")

        lengths = np.array([instance.shape[0] for instance in instances])
        all_sliced, all_owners = [], []
        # examples of the same length share window indices
        for length in np.unique(lengths):
            instance_ids = np.flatnonzero(lengths == length)
            sliced, owner = self._slice_matrix(np.vstack([instances[idx] for idx in instance_ids]), instance_ids)
            all_sliced.append(sliced)
            all_owners.append(owner)

        return np.vstack(all_sliced), np.concatenate(all_owners)

    def n_placements(self, features):
        """ Number of window placements in each example, computed from example shapes only (no data gets sliced). """
        instances = as_instances(features)
        if isinstance(instances, np.ndarray):
            wind_indices = self.window_indices(self._matrix_shape(instances))
            return np.full(instances.shape[0], wind_indices.shape[0], dtype=np.int64)

        if self.single_shape is not None:
            raise ShapeError("Examples of different lengths can only be scanned as sequences...")

        lengths = np.array([instance.shape[0] for instance in instances])
        counts = np.zeros(lengths.shape[0], dtype=np.int64)
        for length in np.unique(lengths):
            counts[lengths == length] = self.window_indices([1, length]).shape[0]

        return counts

    def fit_transform(self, features, labels, random_state=None):
        """ Trains a random forest and a completely random forest on all slices and returns averaged out-of-fold
        class distributions for each example ([RF block, CRF block], i.e. 2 * num_classes columns).
        """
        instances = as_instances(features)
        labels = np.asarray(labels)
        n_instances = num_instances(instances)

        sliced_data, owner = self.slice_data(instances)
        if sliced_data.shape[0] == 0:
            raise ScanConfigurationError("Window %s does not fit into any of the examples..." % str(self.wind_size))

        if self.verbose > 0:
            print("Successfully sliced data for window size %s and stride %s ----> shape of slices: %s..." %
                  (str(self.wind_size), str(self.stride), str(sliced_data.shape)))

        # folds are assigned to examples, so slices of one example are never split between training and held-out part
        rng = check_random_state(random_state)
        eligible = np.unique(owner)
        instance_folds = np.full(n_instances, -1, dtype=np.int64)
        instance_folds[eligible] = common_utils.assign_folds(labels[eligible], k_cv=self.k_cv, random_state=rng)

        units, class_distribs = common_utils.fit_out_of_fold(units_params=self._units_params(),
                                                             feats=sliced_data,
                                                             labels=labels[owner],
                                                             fold_ids=instance_folds[owner],
                                                             n_classes=self.n_classes,
                                                             n_jobs=self.n_jobs,
                                                             random_state=rng,
                                                             verbose=self.verbose)
        self.rf_unit, self.crf_unit = units

        transformed = [_average_by_owner(distrib, owner, n_instances) for distrib in class_distribs]
        self.kfold_acc = common_utils.accuracy((transformed[0] + transformed[1])[eligible], labels[eligible])
        if self.verbose > 0:
            print("Average GRAIN accuracy is %f..." % self.kfold_acc)

        return np.hstack(transformed)

    def transform(self, features):
        if not self.is_fitted:
            raise GCForestError("Grain with window %s is not trained yet!" % str(self.wind_size))

        instances = as_instances(features)
        n_instances = num_instances(instances)
        sliced_data, owner = self.slice_data(instances)

        return np.hstack([_average_by_owner(unit.predict_proba(sliced_data), owner, n_instances)
                          for unit in (self.rf_unit, self.crf_unit)])
