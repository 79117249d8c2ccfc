import numpy as np
from sklearn.model_selection import train_test_split

from gcforest_engine.exceptions import ConfigurationError


def holdout_split(num_examples, labels, test_size=0.3, random_state=None):
    """ Splits example indices into a training and a held-out part (stratified by label where every class has at least
    2 examples). Working on indices makes it usable for lists of sequences of different lengths as well.

    Parameters
    ----------
    :param num_examples: int
    :param labels: numpy.ndarray
    :param test_size: float (default: 0.3)
            Fraction of examples in held-out part.
    :param random_state: int or numpy.random.RandomState (default: None)
    :return: tuple
            (training indices, held-out indices)
    """
    labels = np.asarray(labels)
    if not 0.0 < test_size < 1.0:
        raise ConfigurationError("'test_size' must be in (0, 1) (got %r)..." % (test_size,))

    n_test = int(np.ceil(test_size * num_examples))
    if n_test < 1 or num_examples - n_test < 1:
        raise ConfigurationError("Can not hold out %.2f of %d examples..." % (test_size, num_examples))

    _, class_counts = np.unique(labels, return_counts=True)
    n_classes = class_counts.shape[0]
    feasible = class_counts.min() >= 2 and min(n_test, num_examples - n_test) >= n_classes
    stratify = labels if feasible else None

    train_idx, test_idx = train_test_split(np.arange(num_examples), test_size=test_size, stratify=stratify,
                                           shuffle=True, random_state=random_state)

    return np.sort(train_idx), np.sort(test_idx)
