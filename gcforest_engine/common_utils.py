import numpy as np
import joblib
from joblib import Parallel, delayed
from sklearn.model_selection import KFold, StratifiedKFold
from sklearn.utils import check_random_state

from gcforest_engine.exceptions import ConfigurationError, ShapeError, TrainingError
from gcforest_engine.forest_unit import ForestUnit

MAX_SEED = 2 ** 31 - 1


def _kfold_ids(labels, k_cv, seed):
    fold_ids = np.zeros(labels.shape[0], dtype=np.int64)

    _, class_counts = np.unique(labels, return_counts=True)
    if class_counts.min() >= k_cv:
        kf = StratifiedKFold(n_splits=k_cv, shuffle=True, random_state=seed)
    else:
        kf = KFold(n_splits=k_cv, shuffle=True, random_state=seed)

    for idx_fold, (_, test_indices) in enumerate(kf.split(np.zeros((labels.shape[0], 1)), labels)):
        fold_ids[test_indices] = idx_fold

    return fold_ids


def _is_degenerate(fold_ids, labels, k_cv):
    # a training part (all folds but one) that only holds one class can not be used to train a forest
    return any(np.unique(labels[fold_ids != idx_fold]).shape[0] < 2 for idx_fold in range(k_cv))


def assign_folds(labels, k_cv=3, random_state=None):
    """ Assigns each example to one of `k_cv` folds (stratified by label where every class has at least `k_cv`
    examples).

    Parameters
    ----------
    :param labels: numpy.ndarray
            Encoded labels.
    :param k_cv: int (default: 3)
            Parameter for k-fold cross validation.
    :param random_state: int or numpy.random.RandomState (default: None)
            Source of randomness for shuffling.
    :return: numpy.ndarray
            Fold index for every example.
    """
    labels = np.asarray(labels)
    if labels.shape[0] < k_cv:
        raise ConfigurationError("Can not split %d examples into %d folds..." % (labels.shape[0], k_cv))

    rng = check_random_state(random_state)
    fold_ids = _kfold_ids(labels, k_cv, rng.randint(MAX_SEED))
    if not _is_degenerate(fold_ids, labels, k_cv):
        return fold_ids

    # one retry on a re-shuffled split
    fold_ids = _kfold_ids(labels, k_cv, rng.randint(MAX_SEED))
    if _is_degenerate(fold_ids, labels, k_cv):
        raise TrainingError("Could not split examples into %d folds such that every training part holds at least "
                            "2 classes..." % k_cv)

    return fold_ids


def _fit_unit(unit_params, seed, feats, labels, train_rows, test_rows):
    unit = ForestUnit(random_state=seed, **unit_params)
    unit.fit(feats[train_rows], labels[train_rows])

    proba_preds = unit.predict_proba(feats[test_rows]) if test_rows is not None else None

    return unit, proba_preds


def fit_out_of_fold(units_params, feats, labels, fold_ids, n_classes, n_jobs=1, random_state=None, verbose=0):
    """ Gets out-of-fold class probabilities for every forest slot in `units_params` and trains each slot on all
    eligible examples afterwards.

    Folds are given as an index array over the rows of `feats`, so the matrix is only ever sliced, never copied into
    per-fold data sets.

    Parameters
    ----------
    :param units_params: list
            Keyword arguments for ForestUnit (without `random_state`), one dict per slot.
    :param feats: numpy.ndarray
            Training data - features.
    :param labels: numpy.ndarray
            Training data - encoded labels.
    :param fold_ids: numpy.ndarray
            Fold index for every row of `feats`. Rows with index -1 take no part in training.
    :param n_classes: int
            Number of all classes.
    :param n_jobs: int (default: 1)
            Number of training jobs to run in parallel.
    :param random_state: int or numpy.random.RandomState (default: None)
            Source of seeds for the trained forests.
    :param verbose: int (default: 0)
    :return: tuple
            (list of trained units (one per slot, trained on all eligible rows), list of out-of-fold class
            distributions (one numpy.ndarray of shape [num_rows, n_classes] per slot))
    """
    rng = check_random_state(random_state)
    k_cv = int(fold_ids.max()) + 1
    eligible_rows = np.flatnonzero(fold_ids >= 0)

    # seeds are drawn up front so the result does not depend on the order in which jobs finish
    seeds = rng.randint(MAX_SEED, size=(len(units_params), k_cv + 1))

    jobs = []
    for idx_unit, unit_params in enumerate(units_params):
        for idx_fold in range(k_cv):
            train_rows = np.flatnonzero(np.logical_and(fold_ids >= 0, fold_ids != idx_fold))
            test_rows = np.flatnonzero(fold_ids == idx_fold)
            jobs.append((idx_unit, idx_fold, delayed(_fit_unit)(unit_params, seeds[idx_unit, idx_fold], feats, labels,
                                                                train_rows, test_rows)))
        # retrain on whole (eligible) training set
        jobs.append((idx_unit, k_cv, delayed(_fit_unit)(unit_params, seeds[idx_unit, k_cv], feats, labels,
                                                        eligible_rows, None)))

    results = Parallel(n_jobs=n_jobs, prefer="threads")(job for _, _, job in jobs)

    units = [None] * len(units_params)
    class_distribs = [np.zeros((feats.shape[0], n_classes)) for _ in units_params]
    for (idx_unit, idx_fold, _), (unit, proba_preds) in zip(jobs, results):
        if idx_fold == k_cv:
            units[idx_unit] = unit
        else:
            class_distribs[idx_unit][fold_ids == idx_fold, :] = proba_preds

    if verbose > 1:
        for idx_unit, unit in enumerate(units):
            curr_acc = accuracy(class_distribs[idx_unit][eligible_rows], labels[eligible_rows])
            print("Out-of-fold accuracy of %s#%d is %f..." % (unit.kind.name, idx_unit, curr_acc))

    return units, class_distribs


def accuracy(proba_preds, labels):
    labels = np.asarray(labels)
    if labels.shape[0] == 0:
        raise ConfigurationError("Can not compute accuracy on an empty set of examples...")

    return float(np.sum(np.argmax(proba_preds, axis=1) == labels)) / labels.shape[0]


def average_proba(feats, n_classes):
    """ Averages concatenated class distributions of several forests.

    Parameters
    ----------
    :param feats: numpy.ndarray
            Array of shape [num_examples, num_forests * n_classes].
    :param n_classes: int
    :return: numpy.ndarray
            Mean class distribution, shape [num_examples, n_classes].
    """
    feats = np.asarray(feats)
    if feats.shape[1] % n_classes != 0:
        raise ShapeError("Width %d is not a multiple of the number of classes (%d)..." % (feats.shape[1], n_classes))

    # e.g. [p11, p12, p13, p21, p22, p23] -> [[p11, p12, p13], [p21, p22, p23]]
    return np.mean(np.reshape(feats, [feats.shape[0], -1, n_classes]), axis=1)


def save_data(data_obj, path):
    joblib.dump(value=data_obj,
                filename=path,
                protocol=-1)


def load_data(path):
    return joblib.load(filename=path)
